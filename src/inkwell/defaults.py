"""Default configuration and app-wide constants for Inkwell."""

import os
from pathlib import Path


DEFAULT_CONFIG_TOML = """# Inkwell Configuration

[backend]
# PostgREST-compatible backend (e.g. a Supabase project)
url = "env:INKWELL_BACKEND_URL"
anon_key = "env:INKWELL_ANON_KEY"
access_token = "env:INKWELL_ACCESS_TOKEN"  # session JWT, anon key is used when empty
user_id = "env:INKWELL_USER_ID"  # leave unset to keep everything local
timeout = 15.0  # seconds per request

[review]
model = "anthropic/claude-sonnet-4-20250514"
temperature = 0.4
max_tokens = 1500
# api_base = "http://localhost:11434"  # Ollama or another custom endpoint

[speech]
model_id = "eleven_monolingual_v1"
# output_dir = "~/Music/inkwell"  # defaults to $XDG_DATA_HOME/inkwell/recitations

[storage]
# db_path = "~/.local/share/inkwell/inkwell.db"

[logging]
level = "WARNING"  # DEBUG, INFO, WARNING, ERROR
"""

# Namespaced keys for on-device snapshots and caches
STORAGE_KEYS = {
    "poems": "@inkwell_poems",
    "collections": "@inkwell_collections",
    "settings": "@inkwell_settings",
    "daily_poem": "@inkwell_daily_poem",
    "rhyme_prefix": "@inkwell_rhyme_",
}

SECURE_STORE_KEYS = {
    "api_keys": "@inkwell_api_keys",
}

ALL_POEMS_COLLECTION_ID = "all-poems"
DRAFTS_COLLECTION_ID = "drafts"
DEFAULT_COLLECTION_IDS = (ALL_POEMS_COLLECTION_ID, DRAFTS_COLLECTION_ID)

NEW_COLLECTION_COLOR = "#0F3460"
NEW_COLLECTION_ICON = "folder"

API_URLS = {
    "poetrydb": "https://poetrydb.org",
    "datamuse": "https://api.datamuse.com",
    "elevenlabs": "https://api.elevenlabs.io/v1",
}

# Seconds
API_TIMEOUTS = {
    "poetrydb": 10.0,
    "datamuse": 5.0,
    "review": 30.0,
    "validate": 10.0,
    "elevenlabs": 60.0,
}

EVENT_LOG_RETENTION_DAYS = 30

CACHE_EXPIRY_HOURS = {
    "daily_poem": 24,
    "rhymes": 30 * 24,
}

TTS_RATE_MIN = 0.5
TTS_RATE_MAX = 2.0

FONT_SIZE_MAP = {"small": 14, "medium": 16, "large": 20}

# Reference quotas for the free tier; the CLI reports them, nothing enforces them
FREE_TIER_LIMITS = {
    "max_collections": 3,
    "reviews_per_day": 3,
    "recitations_per_day": 2,
}


def config_dir() -> Path:
    """Return $XDG_CONFIG_HOME/inkwell (or ~/.config/inkwell)."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
    return Path(xdg_config_home) / "inkwell"


def data_dir() -> Path:
    """Return $XDG_DATA_HOME/inkwell (or ~/.local/share/inkwell)."""
    xdg_data_home = os.environ.get(
        "XDG_DATA_HOME", str(Path.home() / ".local" / "share")
    )
    return Path(xdg_data_home) / "inkwell"


def ensure_config() -> Path:
    """Create the default config.toml if it doesn't exist.

    Returns:
        Path to the config file
    """
    directory = config_dir()
    directory.mkdir(parents=True, exist_ok=True)

    config_file = directory / "config.toml"
    if not config_file.exists():
        config_file.write_text(DEFAULT_CONFIG_TOML)
    return config_file
