"""Shared utilities for gigmarket."""

import os
from pathlib import Path


def get_gigmarket_home() -> Path:
    """Data directory: $GIGMARKET_DATA_DIR, else ~/.gigmarket."""
    env_dir = os.environ.get("GIGMARKET_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".gigmarket"
