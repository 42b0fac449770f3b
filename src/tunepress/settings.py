"""
Settings for a tunepress run.
Loaded from tunepress.yaml, every key optional.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .log import debug, warning

CONFIG_NAME = "tunepress.yaml"


@dataclass
class LoudnessTarget:
    """EBU R128 targets handed to ffmpeg's loudnorm filter."""
    integrated: float = -14
    true_peak: float = -1.5
    range: float = 11


@dataclass
class Settings:
    input_dir: Path = Path("./Music")
    output_dir: Path = Path("./Converted")
    batch_size: Optional[int] = None      # None runs everything as one batch
    workers: Optional[int] = None         # None means os.cpu_count()
    bitrate: str = "128k"
    audio_codec: str = "aac"
    container: str = "ipod"
    extension: str = "m4a"
    loudness: LoudnessTarget = field(default_factory=LoudnessTarget)
    query_suffix: str = "song album art"
    search_timeout: float = 10
    probe_timeout: float = 30
    strip_words: List[str] = field(default_factory=list)
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        settings = cls()
        for key in ('batch_size', 'workers'):
            if data.get(key) is not None:
                setattr(settings, key, int(data[key]))
        for key in ('input_dir', 'output_dir'):
            if data.get(key):
                setattr(settings, key, Path(os.path.expanduser(str(data[key]))))
        for key in ('bitrate', 'audio_codec', 'container', 'extension', 'ffmpeg', 'ffprobe'):
            if data.get(key):
                setattr(settings, key, str(data[key]))
        if data.get('probe_timeout') is not None:
            settings.probe_timeout = float(data['probe_timeout'])
        if data.get('strip_words'):
            settings.strip_words = [str(word) for word in data['strip_words']]

        loudness = data.get('loudness') or {}
        for key in ('integrated', 'true_peak', 'range'):
            if loudness.get(key) is not None:
                setattr(settings.loudness, key, float(loudness[key]))

        search = data.get('search') or {}
        if search.get('query_suffix') is not None:
            settings.query_suffix = str(search['query_suffix'])
        if search.get('timeout') is not None:
            settings.search_timeout = float(search['timeout'])

        return settings


def find_config(config_path: Optional[Path] = None) -> Optional[Path]:
    """
    Locate the settings file.

    Order of preference:
    1. the explicit path
    2. $TUNEPRESS_CONFIG_HOME/tunepress.yaml (defaults to $HOME)
    3. ./tunepress.yaml
    """
    if config_path is not None:
        return Path(config_path)

    config_home = os.environ.get('TUNEPRESS_CONFIG_HOME', str(Path.home()))
    for candidate in (Path(config_home) / CONFIG_NAME, Path.cwd() / CONFIG_NAME):
        if candidate.exists():
            return candidate
    return None


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings, falling back to defaults when no usable file exists."""
    path = find_config(config_path)
    if path is None or not path.exists():
        debug("No config file found, using defaults")
        return Settings()

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("top level must be a mapping")
        settings = Settings.from_dict(data)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        warning(f"Failed to load config from {path}: {e}")
        return Settings()

    debug(f"Loaded config from {path}")
    return settings
