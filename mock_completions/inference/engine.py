from __future__ import annotations

import random
import time
import uuid
from collections.abc import Callable

import structlog

from mock_completions.config import SUPPORTED_ENCODINGS, Settings
from mock_completions.errors import EncodingError
from mock_completions.inference.choices import create_choices
from mock_completions.inference.tokenizer import (
    approximate_token_count,
    get_token_counter,
    load_encoding,
)
from mock_completions.logging_utils import preview_text
from mock_completions.metrics import FINISH_REASONS, record_usage_metrics
from mock_completions.models.request import CompletionRequest
from mock_completions.models.response import Choice, CompletionResponse, Usage

COMPLETION_ID_PREFIX = "cmpl-mock-id-"


class MockCompletionEngine:
    """Turns a validated completion request into a full response envelope."""

    def __init__(
        self,
        settings: Settings,
        logger: structlog.stdlib.BoundLogger,
        rng_factory: Callable[[], random.Random] | None = None,
    ) -> None:
        self.settings = settings
        self.logger = logger
        self._rng_factory = rng_factory or (lambda: random.Random(self.settings.logprobs_seed))
        self._ready_encodings: set[str] = set()

    def warm_up(self) -> None:
        """Load every encoding family so no request pays for the BPE download."""
        for encoding_name in SUPPORTED_ENCODINGS:
            t0 = time.perf_counter()
            try:
                load_encoding(encoding_name)
            except (EncodingError, ValueError) as e:
                log = self.logger.error if encoding_name == self.settings.default_encoding else self.logger.warning
                log("tokenizer_init_failed", encoding=encoding_name, error=str(e))
                continue
            self._ready_encodings.add(encoding_name)
            self.logger.info(
                "tokenizer_initialized",
                encoding=encoding_name,
                duration_ms=int((time.perf_counter() - t0) * 1000),
            )

    def tokenizer_ready(self) -> bool:
        return self.settings.default_encoding in self._ready_encodings

    def _usage(self, model: str, prompt: str, choices: list[Choice]) -> Usage:
        texts = [choice.text for choice in choices]
        try:
            return get_token_counter(model, self.settings.default_encoding).usage(prompt, texts)
        except EncodingError as e:
            self.logger.warning("usage_approximated", model=model, error=str(e))

        prompt_tokens = approximate_token_count(prompt)
        completion_tokens = sum(approximate_token_count(text) for text in texts)
        return Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

    def create_completion(self, req: CompletionRequest) -> CompletionResponse:
        start = time.perf_counter()
        prompt = req.prompt_text

        choices = create_choices(
            req.n,
            prompt,
            req.stop_sequences,
            req.max_tokens,
            req.echo,
            req.logprobs,
            req.model,
            rng=self._rng_factory(),
            default_encoding=self.settings.default_encoding,
        )
        usage = self._usage(req.model, prompt, choices)

        for choice in choices:
            FINISH_REASONS.labels(finish_reason=choice.finish_reason or "none").inc()
        record_usage_metrics(usage.prompt_tokens, usage.completion_tokens)

        response = CompletionResponse(
            id=f"{COMPLETION_ID_PREFIX}{uuid.uuid4()}",
            created=int(time.time()),
            model=req.model,
            choices=choices,
            usage=usage,
        )

        self.logger.info(
            "completion_created",
            completion_id=response.id,
            model=req.model,
            n=req.n,
            echo=req.echo,
            prompt=preview_text(prompt, self.settings.max_log_text_chars),
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        return response
