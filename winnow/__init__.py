"""
Priority-based prompt composition with token budgeting.

Given more content than fits in a context window, winnow keeps what
matters most: pieces carry priorities, fallbacks and overflow policies,
and the renderer picks the cheapest set of forms that fits the budget.
"""

from .errors import WinnowError, OversizedContentError, ConfigError
from .schema import (
    ALWAYS,
    Always,
    ContentPiece,
    ContentType,
    OverflowPolicy,
    Priority,
    Role,
    Section,
)
from .tokenizer import (
    TokenCounter,
    ApproximateCounter,
    TiktokenCounter,
    get_counter,
)
from .truncation import truncate_end, truncate_middle, fit_content
from .renderer import (
    render,
    find_threshold,
    resolve_fit,
    RenderResult,
    FallbackUsage,
    FitResult,
)
from .prompt import Prompt
from .config import Config, load_config, save_config, counter_from_config

__version__ = "0.1.0"

__all__ = [
    # Errors
    "WinnowError",
    "OversizedContentError",
    "ConfigError",
    # Schema
    "ALWAYS",
    "Always",
    "ContentPiece",
    "ContentType",
    "OverflowPolicy",
    "Priority",
    "Role",
    "Section",
    # Tokenizer
    "TokenCounter",
    "ApproximateCounter",
    "TiktokenCounter",
    "get_counter",
    # Truncation
    "truncate_end",
    "truncate_middle",
    "fit_content",
    # Renderer
    "render",
    "find_threshold",
    "resolve_fit",
    "RenderResult",
    "FallbackUsage",
    "FitResult",
    # Builder
    "Prompt",
    # Config
    "Config",
    "load_config",
    "save_config",
    "counter_from_config",
]
