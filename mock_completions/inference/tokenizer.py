from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from functools import lru_cache

import structlog
import tiktoken

from mock_completions.errors import EncodingError
from mock_completions.models.response import Usage

logger = structlog.get_logger()

DEFAULT_ENCODING = "cl100k_base"

# Exact model names. Checked before the prefix table.
MODEL_ENCODINGS: dict[str, str] = {
    "gpt-4o": "o200k_base",
    "gpt-4o-mini": "o200k_base",
    "gpt-4": "cl100k_base",
    "gpt-3.5-turbo": "cl100k_base",
    "gpt-3.5-turbo-instruct": "cl100k_base",
    "text-embedding-ada-002": "cl100k_base",
    "text-davinci-002": "p50k_base",
    "text-davinci-003": "p50k_base",
    "code-davinci-002": "p50k_base",
}

# Ordered: longer prefixes that share a stem must come first.
MODEL_PREFIX_ENCODINGS: tuple[tuple[str, str], ...] = (
    ("gpt-4o-", "o200k_base"),
    ("gpt-4-", "cl100k_base"),
    ("gpt-3.5-turbo-", "cl100k_base"),
    ("text-embedding-3-", "cl100k_base"),
    ("text-davinci-", "p50k_base"),
    ("code-davinci-", "p50k_base"),
)


def resolve_encoding_name(model: str, default: str = DEFAULT_ENCODING) -> str:
    """Map a model identifier to the name of its BPE encoding family."""
    model = model.strip()
    if model in MODEL_ENCODINGS:
        return MODEL_ENCODINGS[model]
    for prefix, encoding_name in MODEL_PREFIX_ENCODINGS:
        if model.startswith(prefix):
            return encoding_name
    return default


# Seconds before a family that failed to load (e.g. BPE download error) is tried again.
ENCODING_RETRY_SECONDS = 60.0

_failed_encodings: dict[str, tuple[float, str]] = {}
_failed_lock = threading.Lock()


def load_encoding(encoding_name: str) -> tiktoken.Encoding:
    """Load a tiktoken encoding, remembering recent load failures.

    ``ValueError`` (an encoding tiktoken doesn't know) propagates unchanged;
    any other failure is cached and raised as :class:`EncodingError`.
    """
    with _failed_lock:
        failure = _failed_encodings.get(encoding_name)
    if failure is not None:
        failed_at, message = failure
        if time.monotonic() - failed_at < ENCODING_RETRY_SECONDS:
            raise EncodingError(message)

    try:
        encoding = tiktoken.get_encoding(encoding_name)
    except ValueError:
        raise
    except Exception as e:
        message = f"Failed to load encoding {encoding_name}: {e}"
        with _failed_lock:
            _failed_encodings[encoding_name] = (time.monotonic(), message)
        raise EncodingError(message) from e

    with _failed_lock:
        _failed_encodings.pop(encoding_name, None)
    return encoding


def clear_encoding_failures() -> None:
    with _failed_lock:
        _failed_encodings.clear()


def approximate_token_count(text: str) -> int:
    """Whitespace word count, for when no encoding can be loaded at all."""
    return len(text.split())


class TokenCounter:
    """Counts and truncates text with the BPE encoding of a given model."""

    def __init__(self, model: str, default_encoding: str = DEFAULT_ENCODING) -> None:
        self.model = model
        self.encoding_name = resolve_encoding_name(model, default_encoding)
        try:
            self._encoding = load_encoding(self.encoding_name)
        except ValueError:
            # tiktoken doesn't know this family; use the default table instead.
            logger.warning(
                "encoding_unavailable_falling_back",
                model=model,
                encoding=self.encoding_name,
                fallback=default_encoding,
            )
            self.encoding_name = default_encoding
            try:
                self._encoding = load_encoding(default_encoding)
            except ValueError as e:
                raise EncodingError(f"Unknown default encoding {default_encoding}: {e}") from e

    def encode(self, text: str) -> list[int]:
        return self._encoding.encode(text, allowed_special="all")

    def count(self, text: str) -> int:
        return len(self.encode(text))

    def truncate_to(self, text: str, max_tokens: int) -> str:
        """Keep the first ``max_tokens`` tokens of ``text``.

        A cut inside a multi-byte character drops that partial character.
        Any other undecodable byte sequence raises :class:`EncodingError`.
        """
        tokens = self.encode(text)
        if len(tokens) <= max_tokens:
            return text

        data = self._encoding.decode_bytes(tokens[:max_tokens])
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            if e.reason == "unexpected end of data":
                return data[: e.start].decode("utf-8")
            raise EncodingError(
                f"Truncated text is not valid UTF-8 under {self.encoding_name}: {e}"
            ) from e

    def usage(self, prompt: str, completions: Iterable[str]) -> Usage:
        """Usage for one prompt and every completion text generated from it."""
        prompt_tokens = self.count(prompt)
        completion_tokens = sum(self.count(text) for text in completions)
        return Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


@lru_cache(maxsize=128)
def get_token_counter(model: str, default_encoding: str = DEFAULT_ENCODING) -> TokenCounter:
    """Shared, read-only counter per model name."""
    return TokenCounter(model, default_encoding)
