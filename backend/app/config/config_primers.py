# File: backend/app/config/config_primers.py
# Version: v0.3.0
"""
Design options loader/saver.

- Reads defaults from: backend/app/config/primers_param_default.json
- Reads/writes current from: backend/app/config/primers_param.json
- Validates payloads with DesignOptions (Pydantic) from core/primer/parameters.py
- Both paths can be overridden through Settings (PRIMER_PARAMS_DEFAULT_PATH,
  PRIMER_PARAMS_PATH); relative paths are resolved against the repository root.

Usage:
    from backend.app.config.config_primers import load_current_params, save_current_params

Notes
-----
- Keys are camelCase, for example:

  {
    "primerLengthMin": 18,
    "primerLengthMax": 30,
    "primerTmMin": 55.0,
    "primerTmMax": 72.0,
    "primerTmTarget": 60.0,
    "primerGCMin": 30.0,
    "primerGCMax": 70.0,
    "strategy": "back-to-back",
    "circular": false,
    "exhaustiveSearch": false
  }

Thread-safety:
- Uses atomic writes (tmp + replace) to avoid partial/dirty writes.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Tuple

from backend.app.core.config import settings
from backend.app.core.primer.parameters import DesignOptions

log = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).resolve().parents[3]


def _resolve(path: Path) -> Path:
    return path if path.is_absolute() else _REPO_ROOT / path


def default_file() -> Path:
    return _resolve(settings.PRIMER_PARAMS_DEFAULT_PATH)


def current_file() -> Path:
    return _resolve(settings.PRIMER_PARAMS_PATH)


def _read_json(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _atomic_write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    os.replace(tmp, path)


def load_default_params() -> DesignOptions:
    """Load default design options from primers_param_default.json."""
    payload = _read_json(default_file())
    return DesignOptions.model_validate(payload or {})


def load_current_params(fallback_to_default: bool = True) -> DesignOptions:
    """
    Load current (editable) design options.
    If file missing/empty and fallback is True, return defaults.
    """
    payload = _read_json(current_file())
    if not payload and fallback_to_default:
        return load_default_params()
    return DesignOptions.model_validate(payload or {})


def save_current_params(params: DesignOptions) -> None:
    """Persist current options to primers_param.json (atomic write)."""
    path = current_file()
    _atomic_write_json(path, params.model_dump())
    log.info("Saved design options to %s", path)


def ensure_current_exists() -> Tuple[bool, DesignOptions]:
    """
    Ensure primers_param.json exists; if not, initialize from defaults.
    Returns (created, params).
    """
    if current_file().exists():
        return False, load_current_params()
    defaults = load_default_params()
    save_current_params(defaults)
    return True, defaults
