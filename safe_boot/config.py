import configparser
import os
from typing import Optional

CONFIG_DIR = os.path.join(os.getenv("HOME", os.path.expanduser("~")), ".safe_boot")
CONFIG_FILE = os.path.join(CONFIG_DIR, "safe_boot.cfg")

DEFAULT_SECTION = "safe_boot"
DEFAULT_BOOT_MARKER_MAX_AGE_HOURS = 12.0


def get_value(key: str):
    config = configparser.ConfigParser()
    config.read(CONFIG_FILE)
    val = config.get(DEFAULT_SECTION, key, fallback=None)
    return val


def set_config_value(key: str, value: str):
    """
    Sets a config value in the persistent config file.
    """
    config = configparser.ConfigParser()
    config.read(CONFIG_FILE)
    if DEFAULT_SECTION not in config:
        config[DEFAULT_SECTION] = {}
    config[DEFAULT_SECTION][key] = value
    os.makedirs(os.path.dirname(CONFIG_FILE), exist_ok=True)
    with open(CONFIG_FILE, "w") as f:
        config.write(f)


def get_boot_marker_dir() -> Optional[str]:
    """Directory holding the boot marker (None means the OS temp dir)."""
    val = get_value("boot_marker_dir")
    if not val or not val.strip():
        return None
    return os.path.expanduser(val.strip())


def get_boot_marker_max_age_hours() -> float:
    """
    Get how long a boot marker stays meaningful, in hours.
    Older markers are ignored. Defaults to 12.
    """
    val = get_value("boot_marker_max_age_hours")
    if val is None:
        return DEFAULT_BOOT_MARKER_MAX_AGE_HOURS
    try:
        hours = float(val)
    except ValueError:
        return DEFAULT_BOOT_MARKER_MAX_AGE_HOURS
    if hours <= 0:
        return DEFAULT_BOOT_MARKER_MAX_AGE_HOURS
    return hours


def get_sandbox_parent_dir() -> Optional[str]:
    """Directory the safe-mode sandbox is created in (None means the OS temp dir)."""
    val = get_value("sandbox_parent_dir")
    if not val or not val.strip():
        return None
    return os.path.expanduser(val.strip())
