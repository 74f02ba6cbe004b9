"""Pytest package configuration for shared test artifacts."""

from __future__ import annotations

import os
from pathlib import Path

_ARTIFACT_ROOT = Path(__file__).resolve().parent / "artifacts" / "logs"
_ARTIFACT_ROOT.mkdir(parents=True, exist_ok=True)

# module-level app creation in dreamcut_analyzer.app configures file logging
os.environ.setdefault("DREAMCUT_LOGGING__LOG_DIR", str(_ARTIFACT_ROOT))
