"""Field checks for completion requests.

Each check takes the raw field value and returns an error message, or
``None`` when the value is acceptable or absent.
"""

from __future__ import annotations

from collections.abc import Callable

from mock_completions.errors import ValidationError
from mock_completions.models.request import CompletionRequest


def is_utf8_encodable(text: str | None) -> bool:
    """False for strings holding lone surrogates, which JSON escapes can produce."""
    if text is None:
        return True
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def validate_required_fields(req: CompletionRequest) -> ValidationError | None:
    if not req.model.strip():
        return ValidationError("model field must not be empty", param="model")
    if not is_utf8_encodable(req.model):
        return ValidationError("model must be valid UTF-8 text", param="model")
    if not is_utf8_encodable(req.prompt):
        return ValidationError("prompt must be valid UTF-8 text", param="prompt")
    return None


def validate_temperature(temperature: float | None) -> str | None:
    if temperature is not None and not 0.0 <= temperature <= 2.0:
        return f"Temperature must be between 0.0 and 2.0, got {temperature}"
    return None


def validate_top_p(top_p: float | None) -> str | None:
    if top_p is not None and not 0.0 <= top_p <= 1.0:
        return f"Top_p must be between 0.0 and 1.0, got {top_p}"
    return None


def validate_n(n: int | None) -> str | None:
    if n is not None and n <= 0:
        return f"n must be a positive integer, got {n}"
    return None


def validate_max_tokens(max_tokens: int | None) -> str | None:
    if max_tokens is not None and max_tokens <= 0:
        return f"max_tokens must be a positive integer, got {max_tokens}"
    return None


def validate_presence_penalty(presence_penalty: float | None) -> str | None:
    if presence_penalty is not None and not -2.0 <= presence_penalty <= 2.0:
        return f"Presence penalty must be between -2.0 and 2.0, got {presence_penalty}"
    return None


def validate_frequency_penalty(frequency_penalty: float | None) -> str | None:
    if frequency_penalty is not None and not -2.0 <= frequency_penalty <= 2.0:
        return f"Frequency penalty must be between -2.0 and 2.0, got {frequency_penalty}"
    return None


def validate_logprobs(logprobs: int | None) -> str | None:
    if logprobs is not None and logprobs < 0:
        return f"logprobs must be a non-negative integer, got {logprobs}"
    return None


def validate_stop(stop: str | list[str] | None) -> str | None:
    if stop is None:
        return None
    if isinstance(stop, str):
        if not stop:
            return "Stop sequence cannot be empty"
        return None
    if not stop:
        return "Stop sequences array cannot be empty"
    for i, sequence in enumerate(stop):
        if not sequence:
            return f"Stop sequence at index {i} cannot be empty"
    return None


def validate_best_of(best_of: int | None, n: int | None) -> str | None:
    if best_of is None:
        return None
    if best_of <= 0:
        return f"best_of must be a positive integer, got {best_of}"
    if n is not None and best_of < n:
        return f"best_of must be greater than or equal to n, got best_of={best_of} and n={n}"
    return None


# Priority order: when several fields are invalid, the first one listed is reported.
OPTIONAL_FIELD_CHECKS: list[tuple[str, Callable[[CompletionRequest], str | None]]] = [
    ("temperature", lambda req: validate_temperature(req.temperature)),
    ("top_p", lambda req: validate_top_p(req.top_p)),
    ("n", lambda req: validate_n(req.n)),
    ("max_tokens", lambda req: validate_max_tokens(req.max_tokens)),
    ("presence_penalty", lambda req: validate_presence_penalty(req.presence_penalty)),
    ("frequency_penalty", lambda req: validate_frequency_penalty(req.frequency_penalty)),
    ("logprobs", lambda req: validate_logprobs(req.logprobs)),
    ("stop", lambda req: validate_stop(req.stop)),
    ("best_of", lambda req: validate_best_of(req.best_of, req.n)),
]


def validate_request(req: CompletionRequest) -> ValidationError | None:
    """Return the first constraint the request violates, or ``None``."""
    error = validate_required_fields(req)
    if error is not None:
        return error

    for param, check in OPTIONAL_FIELD_CHECKS:
        message = check(req)
        if message is not None:
            return ValidationError(message, param=param)
    return None
