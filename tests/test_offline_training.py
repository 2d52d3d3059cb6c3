import json

import numpy as np
import pytest

from digitflow.core.types import LearningRates
from digitflow.data.csv_dataset import Dataset
from digitflow.data.weights_store import WeightStore
from digitflow.reporting.metrics import CsvSink, JsonlSink
from digitflow.reporting.plots import PlotAdapter
from digitflow.training.engine import ModelEngine, random_weights
from digitflow.training.offline import evaluate, train_offline


def _separable(n=60, d=6, c=3, seed=0):
    rng = np.random.default_rng(seed)
    labels = rng.integers(0, c, size=n).astype(np.int64)
    features = np.zeros((n, d))
    features[np.arange(n), labels] = 1.0
    features[np.arange(n), c + labels] = 1.0
    return Dataset(features=features, labels=labels)


def _engine(d=6, h=16, c=3, lr=0.1, seed=1):
    weights = random_weights(d, h, c, np.random.default_rng(seed))
    return ModelEngine(weights, LearningRates.uniform(lr))


class _RecordingStore(WeightStore):
    def __init__(self, path):
        super().__init__(path)
        self.saves = 0

    def save(self, weights):
        self.saves += 1
        return super().save(weights)


def test_train_offline_reports_every_step_and_syncs(tmp_path):
    dataset = _separable()
    engine = _engine()
    store = _RecordingStore(tmp_path / "weights.json")
    seen = []

    result = train_offline(
        engine,
        dataset,
        iterations=25,
        batch_size=10,
        rng=np.random.default_rng(2),
        store=store,
        sync_every=10,
        callbacks=[lambda step, metrics: seen.append(step)],
    )

    assert result.steps == 25
    assert seen == list(range(25))
    # before the first step, at steps 0, 10 and 20, and after the last one
    assert store.saves == 5
    assert store.load().allclose(engine.export_weights())
    assert 0.0 <= result.final_accuracy <= 1.0


def test_offline_training_learns_a_separable_task():
    dataset = _separable(n=90)
    engine = _engine(lr=0.05)
    rng = np.random.default_rng(4)
    before = evaluate(engine, dataset, iterations=5, batch_size=30, rng=rng)
    train_offline(engine, dataset, iterations=300, batch_size=15, rng=rng)
    after = evaluate(engine, dataset, iterations=5, batch_size=30, rng=rng)
    assert after >= before
    assert after > 0.9


def test_evaluate_requires_positive_iterations():
    with pytest.raises(ValueError):
        evaluate(_engine(), _separable(), iterations=0, batch_size=5)
    with pytest.raises(ValueError):
        train_offline(_engine(), _separable(), iterations=-1, batch_size=5)


def test_metric_sinks_write_records(tmp_path):
    jsonl = JsonlSink(tmp_path / "run" / "metrics.jsonl", source="offline", seed=3)
    csv_sink = CsvSink(tmp_path / "run" / "metrics.csv")
    plots = PlotAdapter(tmp_path / "run", enable_plots=True)
    train_offline(
        _engine(),
        _separable(),
        iterations=4,
        batch_size=5,
        rng=np.random.default_rng(0),
        callbacks=[jsonl, csv_sink, plots],
    )

    records = [json.loads(line) for line in jsonl.path.read_text().splitlines()]
    assert [r["step"] for r in records] == [0, 1, 2, 3]
    assert records[0]["seed"] == 3
    assert {"loss", "accuracy", "source", "time"} <= set(records[0])

    lines = csv_sink.path.read_text().splitlines()
    assert lines[0] == "accuracy,loss,step"
    assert len(lines) == 5

    plot_path = plots.close()
    assert plot_path is not None and plot_path.exists()


def test_disabled_plot_adapter_writes_nothing(tmp_path):
    plots = PlotAdapter(tmp_path / "quiet")
    plots.on_step(0, {"loss": 1.0, "accuracy": 0.5})
    assert plots.close() is None
    assert not (tmp_path / "quiet").exists()
