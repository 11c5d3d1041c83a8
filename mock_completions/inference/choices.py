"""Per-choice text synthesis for the mock completions endpoint.

No model runs here. A choice starts from the prompt (when echoing) or from an
empty string, and is then cut by the first matching stop sequence or by the
token cap, in that order.
"""

from __future__ import annotations

import random
from collections.abc import Sequence

import structlog

from mock_completions.errors import EncodingError
from mock_completions.inference.tokenizer import DEFAULT_ENCODING, get_token_counter
from mock_completions.models.response import Choice, FinishReason, Logprobs

logger = structlog.get_logger()

TOKEN_LOGPROB_FLOOR = 5.0
ALTERNATIVE_LOGPROB_FLOOR = 10.0
ALTERNATIVE_TOKEN_SPACE = 100


def apply_stop_sequences(text: str, stop_sequences: Sequence[str]) -> str | None:
    """Cut ``text`` before the first sequence, in list order, that occurs in it.

    Returns ``None`` when no sequence matches.
    """
    for stop in stop_sequences:
        position = text.find(stop)
        if position != -1:
            return text[:position]
    return None


def generate_mock_logprobs(text: str, top_n: int, rng: random.Random) -> Logprobs:
    tokens = text.split()

    text_offset: list[int] = []
    offset = 0
    for token in tokens:
        text_offset.append(offset)
        offset += len(token) + 1

    token_logprobs = [-TOKEN_LOGPROB_FLOOR * rng.random() for _ in tokens]

    space = max(ALTERNATIVE_TOKEN_SPACE, top_n)
    top_logprobs = [
        {
            f"token_{candidate}": -ALTERNATIVE_LOGPROB_FLOOR * rng.random()
            for candidate in rng.sample(range(space), top_n)
        }
        for _ in tokens
    ]

    return Logprobs(
        tokens=tokens,
        token_logprobs=token_logprobs,
        text_offset=text_offset,
        top_logprobs=top_logprobs,
    )


def generate_choice(
    index: int,
    prompt: str,
    stop_sequences: Sequence[str],
    max_tokens: int,
    echo: bool,
    logprobs: int | None,
    model: str,
    *,
    rng: random.Random,
    default_encoding: str = DEFAULT_ENCODING,
) -> Choice:
    text = prompt if echo else ""
    finish_reason: FinishReason

    stopped = apply_stop_sequences(text, stop_sequences)
    if stopped is not None:
        text = stopped
        finish_reason = "stop"
    else:
        finish_reason = "content"
        try:
            counter = get_token_counter(model, default_encoding)
            if counter.count(text) >= max_tokens:
                text = counter.truncate_to(text, max_tokens)
                finish_reason = "length"
        except EncodingError as e:
            logger.warning(
                "length_check_skipped", model=model, choice_index=index, error=str(e)
            )

    choice = Choice(index=index, text=text, finish_reason=finish_reason)
    if logprobs is not None:
        choice.logprobs = generate_mock_logprobs(choice.text, logprobs, rng)
    return choice


def create_choices(
    n: int,
    prompt: str,
    stop_sequences: Sequence[str],
    max_tokens: int,
    echo: bool,
    logprobs: int | None,
    model: str,
    *,
    rng: random.Random | None = None,
    default_encoding: str = DEFAULT_ENCODING,
) -> list[Choice]:
    """Build exactly ``n`` choices, indexed ``0..n-1``."""
    if rng is None:
        rng = random.Random()
    return [
        generate_choice(
            i,
            prompt,
            stop_sequences,
            max_tokens,
            echo,
            logprobs,
            model,
            rng=rng,
            default_encoding=default_encoding,
        )
        for i in range(n)
    ]
