"""
Scanner settings.

Holds every tunable used by the decode-and-analysis jobs and loads
overrides from a YAML file.
"""

import logging
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Dict, Optional, Any

import yaml


logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_FORMATS = ('.jpg', '.png')


@dataclass
class ScannerSettings:
    """Defaults for fade detection, scene scan and thumbnail retrieval"""
    fade_search_length: int = 300
    fade_threshold: float = 20.0
    fade_sample_scale: float = 0.25
    scene_threshold: float = 20.0
    min_scene_length: int = 15
    scene_sample_max_dimension: int = 240
    scene_progress_interval: int = 100
    search_limit: int = 25
    image_format: str = '.jpg'
    jpeg_quality: int = 95
    max_workers: int = 2
    message_duration_ms: int = 3000

    def validate(self) -> 'ScannerSettings':
        """Raise ValueError on values the jobs cannot work with"""
        for name in ('fade_search_length', 'min_scene_length', 'scene_sample_max_dimension',
                     'scene_progress_interval', 'max_workers'):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")
        if self.search_limit < 0:
            raise ValueError(f"search_limit must not be negative, got {self.search_limit}")
        for name in ('fade_threshold', 'scene_threshold'):
            value = getattr(self, name)
            if not 0.0 <= float(value) <= 255.0:
                raise ValueError(f"{name} must lie within [0, 255], got {value}")
        if not 0.0 < self.fade_sample_scale <= 1.0:
            raise ValueError(f"fade_sample_scale must lie within (0, 1], got {self.fade_sample_scale}")
        if self.image_format not in SUPPORTED_IMAGE_FORMATS:
            raise ValueError(
                f"image_format must be one of {SUPPORTED_IMAGE_FORMATS}, got {self.image_format!r}"
            )
        if not 0 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must lie within [0, 100], got {self.jpeg_quality}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unknown keys and cast known ones to the declared field type"""
    known = {f.name: f for f in fields(ScannerSettings)}
    cleaned = {}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown setting: {key}")
            continue
        if value is None:
            continue
        default = known[key].default
        try:
            cleaned[key] = type(default)(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value for {key}: {value!r} ({e})")
    return cleaned


def load_settings(
    path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> ScannerSettings:
    """
    Build scanner settings from defaults, a YAML file and explicit overrides.

    Args:
        path: Optional YAML file containing a mapping of setting names to values
        overrides: Values that win over both defaults and the file (e.g. CLI flags)

    Returns:
        Validated ScannerSettings
    """
    settings = ScannerSettings()

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must contain a mapping: {path}")
        settings = replace(settings, **_coerce(data))
        logger.debug(f"Loaded settings from {config_path}")

    if overrides:
        settings = replace(settings, **_coerce(overrides))

    return settings.validate()
