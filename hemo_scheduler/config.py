"""
config.py — Configuration Module for the Dialysis Scheduler

Loads per-deployment settings from config/scheduler_settings.json and merges
them onto the defaults in schedule_config.py.

Tunable keys:
  effective_capacity_ratio   float in (0, 1]; 0.85 or 1.0 in practice
  candidate_strategy         "late_start" | "anticipation"
  late_start_threshold       "HH:MM"; first patient at/after this is flagged
  anticipation_threshold     "HH:MM"; late-shift patients considered for moving
  shift_windows              simulator scoring windows (see schedule_config)
  save_debounce_seconds      autosave debounce window
"""

import copy
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from hemo_scheduler.schedule_config import (
    ANTICIPATION_THRESHOLD,
    CANDIDATE_STRATEGIES,
    CANDIDATE_STRATEGY,
    EFFECTIVE_CAPACITY_RATIO,
    LATE_START_THRESHOLD,
    SAVE_DEBOUNCE_SECONDS,
    SHIFT_WINDOWS,
)
from hemo_scheduler.timegrid import minutes_to_time, time_to_minutes

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_SETTINGS_PATH = DEFAULT_CONFIG_DIR / "scheduler_settings.json"
DEFAULT_STORE_DIR = PROJECT_ROOT / "data"
DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "outputs"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "effective_capacity_ratio": EFFECTIVE_CAPACITY_RATIO,
    "candidate_strategy":       CANDIDATE_STRATEGY,
    "late_start_threshold":     minutes_to_time(LATE_START_THRESHOLD),
    "anticipation_threshold":   minutes_to_time(ANTICIPATION_THRESHOLD),
    "shift_windows":            SHIFT_WINDOWS,
    "save_debounce_seconds":    SAVE_DEBOUNCE_SECONDS,
}


def validate_settings(settings: Dict[str, Any]) -> None:
    ratio = settings["effective_capacity_ratio"]
    if not isinstance(ratio, (int, float)) or not 0 < ratio <= 1:
        raise ValueError(
            f"effective_capacity_ratio must be in (0, 1]. Got: {ratio!r}"
        )
    strategy = settings["candidate_strategy"]
    if strategy not in CANDIDATE_STRATEGIES:
        raise ValueError(
            f"candidate_strategy must be one of {CANDIDATE_STRATEGIES}. Got: {strategy!r}"
        )
    for window in settings["shift_windows"]:
        missing = {"turn", "center", "tolerance", "score", "quality"} - set(window)
        if missing:
            raise ValueError(f"shift window {window} is missing {sorted(missing)}")


def resolve_settings(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Defaults with ``overrides`` applied (unknown keys ignored), validated."""
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    for key, value in (overrides or {}).items():
        if key in settings:
            settings[key] = value
        else:
            logger.warning(f"Ignoring unknown setting: {key}")
    validate_settings(settings)
    return settings


def threshold_minutes(settings: Dict[str, Any], key: str) -> int:
    value = settings[key]
    if isinstance(value, (int, float)):
        return int(value)
    return time_to_minutes(value)


# ---------------------------------------------------------------------------
# Settings file
# ---------------------------------------------------------------------------

def load_settings(settings_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load settings JSON. Missing file → defaults."""
    path = settings_path or DEFAULT_SETTINGS_PATH
    if not path.exists():
        logger.warning(f"Settings file not found: {path}. Using defaults.")
        return resolve_settings()
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    overrides = {k: v for k, v in data.items() if k not in ("last_updated", "notes")}
    settings = resolve_settings(overrides)
    logger.info(f"Loaded settings from {path}")
    return settings


def save_settings(
    settings: Dict[str, Any],
    settings_path: Optional[Path] = None,
) -> None:
    """Persist settings JSON with metadata."""
    path = settings_path or DEFAULT_SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    validate_settings(settings)
    data = dict(settings)
    data["last_updated"] = datetime.now().date().isoformat()
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    logger.info(f"Settings saved to {path}")


def get_config(settings_path: Optional[Path] = None) -> Dict[str, Any]:
    from hemo_scheduler.schedule_config import (
        ALL_CHAIRS,
        CLOSE_MINUTES,
        DAY_GROUP_DAYS,
        OPEN_MINUTES,
        SETUP_DURATION_MINUTES,
        SLOT_INTERVAL,
    )

    return {
        "chairs":          list(ALL_CHAIRS),
        "day_groups":      {k: list(v) for k, v in DAY_GROUP_DAYS.items()},
        "open_minutes":    OPEN_MINUTES,
        "close_minutes":   CLOSE_MINUTES,
        "slot_interval":   SLOT_INTERVAL,
        "setup_minutes":   SETUP_DURATION_MINUTES,
        "settings":        load_settings(settings_path),
    }
