"""Runtime settings loaded from the environment or a YAML/JSON file."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Mapping

import yaml

ENV_PREFIX = "DIGITFLOW_"

_ENV_KEYS = {
    "weights_path": "WEIGHTS",
    "data_dir": "DATA",
    "learning_rate": "LEARNING_RATE",
    "batch_size": "BATCH_SIZE",
    "train_iterations": "TRAIN_ITER",
    "test_iterations": "TEST_ITER",
    "output_level": "OUTPUT_LEVEL",
    "hidden": "HIDDEN",
    "sync_every": "SYNC_EVERY",
    "api_url": "API_URL",
    "cache_size": "CACHE_SIZE",
    "tick_timeout": "TICK_TIMEOUT",
    "seed": "SEED",
}


class ConfigError(ValueError):
    """Raised when settings are missing or malformed."""


@dataclass(frozen=True)
class Settings:
    weights_path: str = "weights.json"
    data_dir: str = "data"
    learning_rate: float = 0.01
    batch_size: int = 128
    train_iterations: int = 1000
    test_iterations: int = 10
    output_level: int = 1
    hidden: int = 128
    sync_every: int = 500
    api_url: str | None = None
    cache_size: int = 4
    tick_timeout: float = 0.05
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.learning_rate < 0:
            raise ConfigError("learning_rate must be non-negative")
        for name in ("batch_size", "hidden"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        for name in ("train_iterations", "test_iterations", "cache_size", "sync_every"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be non-negative")
        if self.tick_timeout <= 0:
            raise ConfigError("tick_timeout must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "Settings":
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
        values = {}
        for name, value in data.items():
            values[name] = _coerce(name, known[name].type, value)
        return cls(**values)

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, base: "Settings | None" = None
    ) -> "Settings":
        """Overlay ``DIGITFLOW_*`` variables on ``base`` (defaults when omitted)."""

        environ = os.environ if environ is None else environ
        overrides = {
            name: environ[ENV_PREFIX + key]
            for name, key in _ENV_KEYS.items()
            if ENV_PREFIX + key in environ
        }
        merged = asdict(base or cls())
        merged.update(overrides)
        return cls.from_mapping(merged)

    def merge(self, **overrides: object) -> "Settings":
        """Return a copy with every non-``None`` override applied."""

        cleaned = {k: v for k, v in overrides.items() if v is not None}
        if not cleaned:
            return self
        return Settings.from_mapping({**asdict(self), **cleaned})


def _coerce(name: str, type_name: object, value: object) -> object:
    type_name = str(type_name)
    if value is None:
        return None
    try:
        if type_name.startswith("int"):
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(value)
            return int(value)  # type: ignore[arg-type]
        if type_name.startswith("float"):
            return float(value)  # type: ignore[arg-type]
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from exc


def load_settings(path: str | Path | None = None, *, environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from ``path`` (YAML or JSON), then apply environment overrides."""

    base = Settings()
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        text = path.read_text()
        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif suffix == ".json":
            data = json.loads(text or "{}")
        else:
            raise ConfigError(f"Unsupported config file type: {path.suffix}")
        if not isinstance(data, Mapping):
            raise ConfigError(f"Config {path.name} must decode to a mapping")
        base = Settings.from_mapping(data)
    return Settings.from_env(environ, base=base)


__all__ = ["ConfigError", "ENV_PREFIX", "Settings", "load_settings"]
