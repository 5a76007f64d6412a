"""
Configuration persistence.

Stores render defaults (budget, tokenizer) in a JSON file.
"""

import json
from pathlib import Path
from typing import TypedDict

from .errors import ConfigError
from .tokenizer import (
    BYTES_PER_TOKEN,
    DEFAULT_MESSAGE_OVERHEAD,
    DEFAULT_TIKTOKEN_MODEL,
    TokenCounter,
    get_counter,
)


class Config(TypedDict, total=False):
    """Render defaults."""
    budget: int
    tokenizer: str  # approximate, tiktoken
    model: str  # tiktoken model name
    bytes_per_token: int  # approximate counter ratio
    overhead: int | None  # per-message overhead, None = counter default


DEFAULT_CONFIG: Config = {
    "budget": 8000,
    "tokenizer": "approximate",
    "model": DEFAULT_TIKTOKEN_MODEL,
    "bytes_per_token": BYTES_PER_TOKEN,
    "overhead": None,
}

DEFAULT_CONFIG_PATH = Path(".winnow.json")


def load_config(path: Path | str = DEFAULT_CONFIG_PATH) -> Config:
    """Load config from file, or return defaults if not found."""
    path = Path(path)

    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
    except (json.JSONDecodeError, IOError):
        return DEFAULT_CONFIG.copy()

    if not isinstance(saved, dict):
        raise ConfigError(f"{path}: expected a JSON object, got {type(saved).__name__}")

    # Merge with defaults to handle missing keys
    config = DEFAULT_CONFIG.copy()
    config.update(saved)
    return config


def save_config(config: Config, path: Path | str = DEFAULT_CONFIG_PATH) -> bool:
    """Save config to file. Returns True on success."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False


def counter_from_config(config: Config) -> TokenCounter:
    """Build the token counter a config describes."""
    name = config.get("tokenizer", DEFAULT_CONFIG["tokenizer"]).lower()
    overhead = config.get("overhead")

    if name == "approximate":
        return get_counter(
            name,
            bytes_per_token=config.get("bytes_per_token", BYTES_PER_TOKEN),
            overhead=DEFAULT_MESSAGE_OVERHEAD if overhead is None else overhead,
        )
    if name == "tiktoken":
        options = {"model": config.get("model", DEFAULT_TIKTOKEN_MODEL)}
        if overhead is not None:
            options["overhead"] = overhead
        return get_counter(name, **options)
    # Unknown names raise ConfigError
    return get_counter(name)
