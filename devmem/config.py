from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/devmem/config.json").expanduser()
DEFAULT_MEMORY_ROOT = "~/.devmem"

CONFIG_ENV_OVERRIDES = {
    "memory_root": "DEVMEM_HOME",
    "tokens_limit": "DEVMEM_TOKENS_LIMIT",
    "warning_threshold": "DEVMEM_WARNING_THRESHOLD",
    "critical_threshold": "DEVMEM_CRITICAL_THRESHOLD",
    "pattern_min_occurrences": "DEVMEM_PATTERN_MIN_OCCURRENCES",
    "pattern_min_confidence": "DEVMEM_PATTERN_MIN_CONFIDENCE",
    "extraction_window_days": "DEVMEM_EXTRACTION_WINDOW_DAYS",
    "archive_after_days": "DEVMEM_ARCHIVE_AFTER_DAYS",
    "compress_after_days": "DEVMEM_COMPRESS_AFTER_DAYS",
    "decay_grace_days": "DEVMEM_DECAY_GRACE_DAYS",
    "default_decay_rate": "DEVMEM_DEFAULT_DECAY_RATE",
    "stale_uncertainty_threshold": "DEVMEM_STALE_UNCERTAINTY_THRESHOLD",
    "high_confidence_threshold": "DEVMEM_HIGH_CONFIDENCE_THRESHOLD",
    "persist_mistake_repeats": "DEVMEM_PERSIST_MISTAKE_REPEATS",
}

_INT_KEYS = {
    "tokens_limit",
    "warning_threshold",
    "critical_threshold",
    "pattern_min_occurrences",
    "pattern_min_confidence",
    "extraction_window_days",
    "archive_after_days",
    "compress_after_days",
    "decay_grace_days",
    "stale_uncertainty_threshold",
    "high_confidence_threshold",
}

_FLOAT_KEYS = {"default_decay_rate"}

_BOOL_KEYS = {"persist_mistake_repeats"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("DEVMEM_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class DevMemConfig:
    memory_root: str = DEFAULT_MEMORY_ROOT

    # Context window accounting for session state.
    tokens_limit: int = 200000
    warning_threshold: int = 150000
    critical_threshold: int = 180000

    # Curation tuning.
    pattern_min_occurrences: int = 3
    pattern_min_confidence: int = 70
    extraction_window_days: int = 7
    archive_after_days: int = 7
    compress_after_days: int = 30
    decay_grace_days: int = 30
    default_decay_rate: float = 0.95
    stale_uncertainty_threshold: int = 5

    high_confidence_threshold: int = 80

    # Write repeat_count bumps from `check` back to MISTAKES.jsonl.
    persist_mistake_repeats: bool = True

    @property
    def memory_root_path(self) -> Path:
        return Path(self.memory_root).expanduser()


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def load_config(path: Path | None = None) -> DevMemConfig:
    cfg = DevMemConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            warnings.warn(
                f"Invalid config file {config_path}; using defaults", RuntimeWarning, stacklevel=2
            )
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: DevMemConfig, data: dict[str, Any]) -> DevMemConfig:
    for key, value in data.items():
        if not hasattr(cfg, key) or key == "memory_root_path":
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key in _BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
            continue
        if key == "memory_root" and isinstance(value, str) and value.strip():
            cfg.memory_root = value.strip()
    return cfg


def _apply_env(cfg: DevMemConfig) -> DevMemConfig:
    for key, raw in get_env_overrides().items():
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(raw, getattr(cfg, key), key=key))
        elif key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(raw, getattr(cfg, key), key=key))
        elif key in _BOOL_KEYS:
            setattr(cfg, key, _parse_bool(raw, getattr(cfg, key)))
        elif raw.strip():
            setattr(cfg, key, raw.strip())
    return cfg
