"""
Persistent preferences stored in ``~/.config/pgpclient/config.toml``.

Only the keys in :data:`_VALIDATORS` are kept; unknown keys and values that
fail validation are dropped on load, so a hand-edited file can never push an
invalid choice into the CLI.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from .ciphers import ALGORITHM_CHOICES, COMPRESSION_CHOICES
from .kdf import KDF_CHOICES

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path.home() / ".config" / "pgpclient"
_CONFIG_FILE = _CONFIG_DIR / "config.toml"

_BOOL_KEYS = ("sign", "compress", "armor")

_VALIDATORS = {
    "keyring": lambda v: isinstance(v, str) and bool(v.strip()),
    "algorithm": lambda v: v in ALGORITHM_CHOICES,
    "kdf": lambda v: v in KDF_CHOICES,
    "compression": lambda v: v in COMPRESSION_CHOICES,
    **{key: lambda v: isinstance(v, bool) for key in _BOOL_KEYS},
}

# Values argparse assigns when the user passes nothing.
_ARG_DEFAULTS = {
    "keyring": None,
    "algorithm": "aes256",
    "kdf": "Argon2id",
    "compression": "zip",
    "sign": False,
    "compress": False,
    "armor": False,
}


def default_keyring_dir() -> Path:
    return _CONFIG_DIR / "keys"


def load_config() -> dict:
    """Read the config file; a missing or unreadable file yields ``{}``."""
    try:
        with open(_CONFIG_FILE, "rb") as f:
            raw = tomllib.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", _CONFIG_FILE, exc)
        return {}

    config = {}
    for key, value in raw.items():
        check = _VALIDATORS.get(key)
        if check is None:
            logger.debug("Skipping unknown config key %r", key)
        elif not check(value):
            logger.debug("Skipping invalid value for config key %r: %r", key, value)
        else:
            config[key] = value
    return config


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def save_config(settings: dict) -> None:
    """Write *settings* (known keys only) with owner-only permissions."""
    _CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    lines = ["# pgpclient preferences"]
    for key, value in settings.items():
        if key in _VALIDATORS and _VALIDATORS[key](value):
            lines.append(f"{key} = {_format_value(value)}")
    fd = os.open(_CONFIG_FILE, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    os.chmod(_CONFIG_FILE, 0o600)


def apply_config_defaults(args, config: dict) -> None:
    """
    Fill argparse attributes still at their defaults from *config*.

    Anything the user passed explicitly wins over the config file.
    """
    for key, value in config.items():
        if not hasattr(args, key):
            continue
        if getattr(args, key) == _ARG_DEFAULTS.get(key):
            setattr(args, key, value)
