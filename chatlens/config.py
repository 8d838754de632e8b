"""
chatlens/config.py
Detector and tier settings. Persists to chatlens_config.json.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from chatlens.detectors.red_flag_detector import HEALTH_BYPASS_THRESHOLD, DetectorSettings
from chatlens.tiers import FREE, KNOWN_TIERS, TIER_ALIASES

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "chatlens_config.json"

DEFAULT_CONFIG = {
    "health_bypass_threshold": HEALTH_BYPASS_THRESHOLD,
    "exempt_critical_from_health_bypass": False,
    "default_tier": FREE,
    "log_level": "INFO",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUE_STRINGS  = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off", "")


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from chatlens_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("config root must be a JSON object")
            return {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to chatlens_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def ensure_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load config, writing the defaults out on first run.
    Returns merged config.
    """
    path   = _config_path(project_root)
    config = load_config(project_root)
    if not path.exists():
        try:
            save_config(config, project_root)
            logger.info(f"Wrote default config: {path}")
        except OSError as e:
            logger.warning(f"Could not write default config {path}: {e}")
    return config


def detector_settings(config: Optional[Dict[str, Any]] = None) -> DetectorSettings:
    """Build the immutable detector settings from a config dict."""
    config = {**DEFAULT_CONFIG, **(config or {})}
    try:
        threshold = float(config["health_bypass_threshold"])
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid health_bypass_threshold {config['health_bypass_threshold']!r}, "
            f"using {HEALTH_BYPASS_THRESHOLD}"
        )
        threshold = HEALTH_BYPASS_THRESHOLD
    return DetectorSettings(
        health_bypass_threshold            = threshold,
        exempt_critical_from_health_bypass = _as_bool(config["exempt_critical_from_health_bypass"]),
    )


def validate_config_update(update: Dict[str, Any]) -> None:
    """
    Raise ValueError for unknown keys or values of the wrong type.
    JSON clients must send real booleans and numbers.
    """
    unknown = set(update) - set(DEFAULT_CONFIG)
    if unknown:
        raise ValueError(f"Unknown config key(s): {', '.join(sorted(unknown))}")

    if "health_bypass_threshold" in update:
        value = update["health_bypass_threshold"]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 100:
            raise ValueError(f"health_bypass_threshold must be a number 0-100, got {value!r}")

    if "exempt_critical_from_health_bypass" in update:
        value = update["exempt_critical_from_health_bypass"]
        if not isinstance(value, bool):
            raise ValueError(f"exempt_critical_from_health_bypass must be true or false, got {value!r}")

    if "default_tier" in update:
        value = update["default_tier"]
        known = set(KNOWN_TIERS) | set(TIER_ALIASES)
        if not isinstance(value, str) or value.strip().lower() not in known:
            raise ValueError(f"default_tier must be one of {', '.join(sorted(known))}, got {value!r}")

    if "log_level" in update:
        value = update["log_level"]
        if not isinstance(value, str) or value.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value!r}")


def _as_bool(value: Any) -> bool:
    """Strict flag parsing for hand-edited config files: "false" is False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    logger.warning(f"Invalid exempt_critical_from_health_bypass {value!r}, using False")
    return False
