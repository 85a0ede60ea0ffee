"""
Configuration for searchbox.

config.yaml is read once and cached; every other module calls get_config().
The file location is SEARCHBOX_CONFIG when set, else config.yaml at the
repository root.

String values may reference environment variables:

    api_key: ${GROQ_API_KEY}               empty when unset
    url: ${SEARCH_URL:-https://x.test}     fallback after ":-"

.env is loaded before the YAML is read, so API keys can live there.
"""

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

_DEFAULT_PATH = Path(__file__).parent.parent / "config.yaml"
_ENV_REF = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")

_config: dict | None = None


def config_path() -> Path:
    override = os.environ.get("SEARCHBOX_CONFIG")
    return Path(override).expanduser() if override else _DEFAULT_PATH


def _expand(value):
    """Substitute ${VAR} / ${VAR:-fallback} in every string of a YAML tree."""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1)) or (m.group(2) or ""), value)
    if isinstance(value, dict):
        return {key: _expand(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand(item) for item in value]
    return value


def load_config(path: Path | None = None) -> dict:
    """Read, expand and cache the config. Later calls return the cached dict."""
    global _config
    if _config is not None:
        return _config

    path = Path(path) if path else config_path()
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    _config = _expand(yaml.safe_load(path.read_text(encoding="utf-8")) or {})
    return _config


def get_config() -> dict:
    return _config if _config is not None else load_config()


def reset_config():
    """Forget the cached config so the next get_config() reads the file again."""
    global _config
    _config = None
