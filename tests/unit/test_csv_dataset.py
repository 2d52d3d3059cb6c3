import numpy as np
import pytest

from digitflow.data.csv_dataset import Dataset, load_csv_dataset, load_split


def _write_split(base, split, pixels, labels):
    width = len(pixels[0])
    header = ",".join(f"p{i}" for i in range(width))
    rows = [",".join(str(v) for v in row) for row in pixels]
    (base / f"x{split}.csv").write_text("\n".join([header, *rows]) + "\n")
    (base / f"y{split}.csv").write_text("\n".join(["label", *map(str, labels)]) + "\n")


def test_load_binarises_pixels_and_rounds_labels(tmp_path):
    _write_split(tmp_path, "train", [[0, 12, 255], [3, 0, 0]], ["4.0", "7"])
    dataset = load_split(tmp_path, "train")

    assert len(dataset) == 2
    assert dataset.features.tolist() == [[0.0, 1.0, 1.0], [1.0, 0.0, 0.0]]
    assert dataset.labels.dtype == np.int64
    assert dataset.labels.tolist() == [4, 7]


def test_load_without_binarise_keeps_raw_values(tmp_path):
    _write_split(tmp_path, "test", [[0, 12, 255]], [1])
    dataset = load_csv_dataset(tmp_path / "xtest.csv", tmp_path / "ytest.csv", binarize=False)
    assert dataset.features.tolist() == [[0.0, 12.0, 255.0]]


def test_row_count_mismatch_raises(tmp_path):
    _write_split(tmp_path, "train", [[0, 1], [1, 0]], [1])
    with pytest.raises(ValueError):
        load_split(tmp_path, "train")


def test_unknown_split_raises(tmp_path):
    with pytest.raises(ValueError):
        load_split(tmp_path, "validation")


def test_sample_block_draws_without_replacement():
    dataset = Dataset(features=np.arange(10, dtype=np.float64)[:, None], labels=np.arange(10))
    rng = np.random.default_rng(0)
    block = dataset.sample_block(10, rng)
    assert sorted(block.inputs[:, 0].tolist()) == list(range(10))
    assert np.array_equal(block.inputs[:, 0].astype(int), block.targets)

    with pytest.raises(ValueError):
        dataset.sample_block(11, rng)
    with pytest.raises(ValueError):
        dataset.sample_block(0, rng)


def test_batches_yields_blocks_forever():
    dataset = Dataset(features=np.zeros((5, 2)), labels=np.zeros(5, dtype=np.int64))
    gen = dataset.batches(2, np.random.default_rng(1))
    assert [len(next(gen)) for _ in range(4)] == [2, 2, 2, 2]


def test_dataset_validates_shapes():
    with pytest.raises(ValueError):
        Dataset(features=np.zeros(3), labels=np.zeros(3))
    with pytest.raises(ValueError):
        Dataset(features=np.zeros((3, 2)), labels=np.zeros(2))
