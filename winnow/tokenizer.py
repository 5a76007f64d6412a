"""
Token counting for budget enforcement.

The renderer only needs two things from a counter: the token count of a
string and the fixed per-message overhead (role markers, structural
tokens). ApproximateCounter is the dependency-free default; TiktokenCounter
gives exact OpenAI counts.
"""

from typing import Any, Protocol, runtime_checkable

import tiktoken

from .errors import ConfigError


# ~4 bytes per token is a reasonable average across LLM tokenizers
BYTES_PER_TOKEN = 4

# Covers both OpenAI and Anthropic per-message structural costs
DEFAULT_MESSAGE_OVERHEAD = 4

# OpenAI documents 3 tokens per chat message
TIKTOKEN_MESSAGE_OVERHEAD = 3

DEFAULT_TIKTOKEN_MODEL = "gpt-4o"
FALLBACK_ENCODING = "cl100k_base"


@runtime_checkable
class TokenCounter(Protocol):
    """Protocol for token counting implementations."""

    def count(self, text: str) -> int:
        """Count tokens in text."""
        ...

    def message_overhead(self) -> int:
        """Fixed tokens added to every message, independent of content."""
        ...


class ApproximateCounter:
    """
    Token counter using UTF-8 byte length.

    Counts bytes rather than characters so multi-byte text costs
    proportionally more, as it does with real tokenizers.
    """

    def __init__(
        self,
        bytes_per_token: int = BYTES_PER_TOKEN,
        overhead: int = DEFAULT_MESSAGE_OVERHEAD,
    ):
        if bytes_per_token < 1:
            raise ConfigError(f"bytes_per_token must be >= 1, got {bytes_per_token}")
        if overhead < 0:
            raise ConfigError(f"overhead must be >= 0, got {overhead}")
        self._bytes_per_token = bytes_per_token
        self._overhead = overhead

    @property
    def bytes_per_token(self) -> int:
        return self._bytes_per_token

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(text.encode("utf-8")) // self._bytes_per_token

    def message_overhead(self) -> int:
        return self._overhead

    def __repr__(self) -> str:
        return (
            f"ApproximateCounter(bytes_per_token={self._bytes_per_token}, "
            f"overhead={self._overhead})"
        )


class TiktokenCounter:
    """Token counter using tiktoken (accurate for OpenAI models)."""

    def __init__(
        self,
        model: str = DEFAULT_TIKTOKEN_MODEL,
        encoding: str | None = None,
        overhead: int = TIKTOKEN_MESSAGE_OVERHEAD,
    ):
        self.model = model
        self.encoding_name = encoding
        self._overhead = overhead
        self._encoder = None  # Lazy load

    @property
    def encoder(self) -> "tiktoken.Encoding":
        if self._encoder is None:
            if self.encoding_name:
                self._encoder = tiktoken.get_encoding(self.encoding_name)
            else:
                try:
                    self._encoder = tiktoken.encoding_for_model(self.model)
                except KeyError:
                    # Unknown model name, use the GPT-4 family encoding
                    self._encoder = tiktoken.get_encoding(FALLBACK_ENCODING)
        return self._encoder

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoder.encode(text, disallowed_special=()))

    def message_overhead(self) -> int:
        return self._overhead

    def __repr__(self) -> str:
        return f"TiktokenCounter(model={self.model!r}, encoding={self.encoding_name!r})"


COUNTERS = {
    "approximate": ApproximateCounter,
    "tiktoken": TiktokenCounter,
}


def get_counter(name: str = "approximate", **options: Any) -> TokenCounter:
    """
    Build a counter by name.

    Args:
        name: "approximate" or "tiktoken"
        **options: Passed to the counter's constructor

    Raises:
        ConfigError: If the name is unknown
    """
    try:
        factory = COUNTERS[name.lower()]
    except KeyError:
        known = ", ".join(sorted(COUNTERS))
        raise ConfigError(f"Unknown tokenizer {name!r} (expected one of: {known})") from None
    return factory(**options)
