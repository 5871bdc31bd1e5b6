import os
from pathlib import Path

from config.settings import PROVIDER_CONFIG_FILENAME

PROJECT_ROOT = Path(__file__).resolve().parent.parent

CONFIG_DIR = Path(os.environ.get("MEDIAFETCH_CONFIG_DIR") or PROJECT_ROOT / "data" / "config").resolve()
LOG_DIR = Path(os.environ.get("MEDIAFETCH_LOG_DIR") or PROJECT_ROOT / "data" / "logs").resolve()


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)


def resolve_config_path(path, *, config_dir=None):
    """Locate a provider config file; relative names may not leave ``config_dir``."""
    base = os.path.realpath(config_dir or CONFIG_DIR)
    resolved = os.path.realpath(os.path.join(base, path or PROVIDER_CONFIG_FILENAME))
    if os.path.commonpath([resolved, base]) != base:
        raise ValueError(f"Config path must be within CONFIG_DIR: {base}")
    return resolved
