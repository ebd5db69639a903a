# services/util.py

import os
import time
from pathlib import Path


def get_env(env: str):
    return os.environ.get(env)


def get_data_path():
    path = get_env('PREVIEW_BOT_DATA_PATH')
    return path.strip() if path else 'data'


def get_config_override() -> Path | None:
    """Explicit config file chosen through ``URL_PREVIEW_BOT_CONFIG_PATH``."""
    path = get_env('URL_PREVIEW_BOT_CONFIG_PATH')
    if path and path.strip():
        return Path(path.strip())
    return None


def now_ms() -> int:
    """Current wall-clock time in milliseconds, the unit of Matrix timestamps."""
    return int(time.time() * 1000)
