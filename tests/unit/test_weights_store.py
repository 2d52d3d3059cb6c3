import json

import numpy as np
import pytest

from digitflow.core.types import WeightPair
from digitflow.data.weights_store import (
    WeightStore,
    WeightsFormatError,
    weights_from_json,
    weights_to_json,
)


def _weights():
    return WeightPair(
        w_in_hidden=np.arange(6, dtype=np.float64).reshape(3, 2),
        w_hidden_out=np.full((4, 3), 0.5),
    )


def test_snapshot_format_is_two_row_major_matrices():
    payload = weights_to_json(_weights())
    assert list(payload) == ["weights"]
    first, second = payload["weights"]
    assert first == [[0.0, 1.0], [2.0, 3.0], [4.0, 5.0]]
    assert len(second) == 4 and len(second[0]) == 3


def test_save_replaces_atomically_and_leaves_no_temp_file(tmp_path):
    store = WeightStore(tmp_path / "nested" / "weights.json")
    store.save(_weights())
    store.save(WeightPair(np.zeros((3, 2)), np.zeros((4, 3))))

    assert store.exists()
    assert not store.temp_path.exists()
    assert store.temp_path.name == "weights.json.tmp"
    loaded = store.load()
    assert loaded.dims == (2, 3, 4)
    assert not np.any(loaded.w_in_hidden)


def test_save_overwrites_a_stale_temp_file(tmp_path):
    store = WeightStore(tmp_path / "weights.json")
    store.temp_path.write_text("partial")
    store.save(_weights())
    assert store.load().allclose(_weights())
    assert not store.temp_path.exists()


def test_ensure_creates_random_snapshot_once(tmp_path):
    store = WeightStore(tmp_path / "weights.json")
    created = store.ensure(5, 4, 3, np.random.default_rng(0))
    assert created.dims == (5, 4, 3)
    assert np.all(np.abs(created.w_in_hidden) <= 1.0)

    again = store.ensure(5, 4, 3, np.random.default_rng(99))
    assert again.allclose(created)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"w": []},
        {"weights": [[[1.0]]]},
        {"weights": [[[1.0, 2.0]], [["a"]]]},
        {"weights": [[[1.0, 2.0], [3.0, 4.0]], [[1.0, 2.0, 3.0]]]},
    ],
)
def test_malformed_snapshots_raise(payload):
    with pytest.raises(WeightsFormatError):
        weights_from_json(payload)


def test_load_rejects_invalid_json(tmp_path):
    path = tmp_path / "weights.json"
    path.write_text("{not json")
    with pytest.raises(WeightsFormatError):
        WeightStore(path).load()


def test_load_reads_external_snapshot(tmp_path):
    path = tmp_path / "weights.json"
    path.write_text(json.dumps({"weights": [[[1.0, 2.0]], [[3.0], [4.0]]]}))
    weights = WeightStore(path).load()
    assert weights.dims == (2, 1, 2)
    assert weights.w_hidden_out[:, 0].tolist() == [3.0, 4.0]
