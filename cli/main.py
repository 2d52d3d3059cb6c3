"""Command line entry point for digitflow."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Iterable

import numpy as np

from digitflow.agent.controller import TrainingController
from digitflow.agent.protocol import GetStatus, Start, Stop
from digitflow.agent.sources import DatasetBatchSource, HttpBatchSource
from digitflow.config import Settings, load_settings
from digitflow.core.types import NUM_CLASSES, LearningRates
from digitflow.data.csv_dataset import load_split
from digitflow.data.weights_store import WeightStore
from digitflow.reporting.metrics import CsvSink, JsonlSink
from digitflow.reporting.plots import PlotAdapter
from digitflow.training.engine import ModelEngine
from digitflow.training.offline import evaluate, train_offline

logger = logging.getLogger("digitflow.cli")


def _configure_logging(level: int) -> None:
    if level <= 0:
        log_level = logging.WARNING
    elif level == 1:
        log_level = logging.INFO
    else:
        log_level = logging.DEBUG
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", type=Path, help="Optional YAML/JSON settings file")
    parser.add_argument("--weights", help="Weight snapshot path")
    parser.add_argument("--data-dir", help="Directory holding x/y train/test CSV files")
    parser.add_argument("--lr", type=float, help="Learning rate for both layers")
    parser.add_argument("--batch-size", type=int, help="Samples per training step")
    parser.add_argument("--seed", type=int, help="Seed for weight init and sampling")
    parser.add_argument(
        "-v", "--output-level", type=int, help="0 warnings only, 1 progress, 2 per-step"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    train = sub.add_parser("train", help="Bulk offline training from CSV data")
    train.add_argument("--iterations", type=int, help="Training steps")
    train.add_argument("--test-iterations", type=int, help="Held-out evaluation blocks")
    train.add_argument("--sync-every", type=int, help="Persist weights every N steps")
    train.add_argument("--run-dir", type=Path, default=Path("runs/offline"))
    train.add_argument("--enable-plots", action="store_true", help="Write loss.png")
    train.add_argument(
        "--fresh",
        action="store_true",
        help="Start from random weights even if a snapshot exists",
    )

    ev = sub.add_parser("evaluate", help="Held-out accuracy of the stored weights")
    ev.add_argument("--test-iterations", type=int, help="Held-out evaluation blocks")

    agent = sub.add_parser("agent", help="Run the live training controller")
    agent.add_argument("--api-url", help="Remote data service; local CSV data when neither this nor DIGITFLOW_API_URL is set")
    agent.add_argument("--cache-size", type=int, help="Prefetched batch capacity")
    agent.add_argument("--steps", type=int, default=100, help="Training steps before stopping")
    agent.add_argument("--max-ticks", type=int, default=10_000, help="Loop iteration budget")
    agent.add_argument("--run-dir", type=Path, default=Path("runs/agent"))
    return parser.parse_args(argv)


def _settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.config)
    return settings.merge(
        weights_path=args.weights,
        data_dir=args.data_dir,
        learning_rate=args.lr,
        batch_size=args.batch_size,
        seed=args.seed,
        output_level=args.output_level,
        train_iterations=getattr(args, "iterations", None),
        test_iterations=getattr(args, "test_iterations", None),
        sync_every=getattr(args, "sync_every", None),
        api_url=getattr(args, "api_url", None),
        cache_size=getattr(args, "cache_size", None),
    )


def _build_engine(
    settings: Settings, store: WeightStore, rng: np.random.Generator, *, fresh: bool, d_in: int
) -> ModelEngine:
    rates = LearningRates.uniform(settings.learning_rate)
    if store.exists() and not fresh:
        return ModelEngine(store.load(), rates)
    return ModelEngine.random(d_in, settings.hidden, NUM_CLASSES, settings.learning_rate, rng)


def _run_train(args: argparse.Namespace, settings: Settings) -> dict:
    rng = np.random.default_rng(settings.seed)
    store = WeightStore(settings.weights_path)
    train_set = load_split(settings.data_dir, "train")
    engine = _build_engine(
        settings, store, rng, fresh=args.fresh, d_in=int(train_set.features.shape[1])
    )

    run_dir = Path(args.run_dir)
    plots = PlotAdapter(run_dir, enable_plots=args.enable_plots)
    callbacks = [
        JsonlSink(run_dir / "metrics.jsonl", source="offline", seed=settings.seed),
        CsvSink(run_dir / "metrics.csv"),
        plots,
    ]
    result = train_offline(
        engine,
        train_set,
        iterations=settings.train_iterations,
        batch_size=settings.batch_size,
        rng=rng,
        store=store,
        sync_every=settings.sync_every,
        callbacks=callbacks,
    )
    plots.close()
    payload = {
        "steps": result.steps,
        "loss": result.final_loss,
        "accuracy": result.final_accuracy,
        "weights": str(store.path),
        "metrics": str(run_dir / "metrics.jsonl"),
    }
    if settings.test_iterations > 0:
        test_set = load_split(settings.data_dir, "test")
        payload["test_accuracy"] = evaluate(
            engine,
            test_set,
            iterations=settings.test_iterations,
            batch_size=min(settings.batch_size, len(test_set)),
            rng=rng,
        )
        logger.info("Final Accuracy: %s", payload["test_accuracy"])
    return payload


def _run_evaluate(settings: Settings) -> dict:
    rng = np.random.default_rng(settings.seed)
    store = WeightStore(settings.weights_path)
    engine = ModelEngine(store.load(), LearningRates.uniform(settings.learning_rate))
    test_set = load_split(settings.data_dir, "test")
    acc = evaluate(
        engine,
        test_set,
        iterations=max(1, settings.test_iterations),
        batch_size=min(settings.batch_size, len(test_set)),
        rng=rng,
    )
    return {"test_accuracy": acc, "weights": str(store.path)}


async def _run_agent(args: argparse.Namespace, settings: Settings) -> dict:
    rng = np.random.default_rng(settings.seed)
    store = WeightStore(settings.weights_path)
    http_source = None
    if settings.api_url:
        http_source = HttpBatchSource(settings.api_url)
        fetch = http_source
        initial = await http_source.get_weights()
    else:
        train_set = load_split(settings.data_dir, "train")
        fetch = DatasetBatchSource(train_set, rng)
        initial = store.ensure(int(train_set.features.shape[1]), settings.hidden, NUM_CLASSES, rng)

    engine = ModelEngine(initial, LearningRates.uniform(settings.learning_rate))
    run_dir = Path(args.run_dir)
    controller = TrainingController(
        engine,
        fetch,
        batch_size=settings.batch_size,
        cache_capacity=settings.cache_size,
        tick_timeout=settings.tick_timeout,
        callbacks=[JsonlSink(run_dir / "status.jsonl", source="agent", seed=settings.seed)],
    )
    controller.send_nowait(Start())
    ticks = 0
    try:
        while controller.iteration < args.steps and ticks < args.max_ticks:
            await controller.run(limit=1)
            ticks += 1
        controller.send_nowait(Stop())
        controller.send_nowait(GetStatus())
        await controller.run(limit=2)
    finally:
        await controller.aclose()
        if http_source is not None:
            await http_source.aclose()

    snapshot = controller.status()
    if http_source is None:
        store.save(snapshot.weights)
    return snapshot.to_dict(include_weights=False)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    settings = _settings(args)
    _configure_logging(settings.output_level)

    if args.command == "train":
        payload = _run_train(args, settings)
    elif args.command == "evaluate":
        payload = _run_evaluate(settings)
    else:
        payload = asyncio.run(_run_agent(args, settings))
    print(json.dumps(payload, sort_keys=True))


if __name__ == "__main__":
    main()
