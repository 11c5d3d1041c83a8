import random
from unittest.mock import MagicMock, patch

import pytest
import structlog

from mock_completions.config import SUPPORTED_ENCODINGS, Settings
from mock_completions.errors import EncodingError
from mock_completions.inference.engine import MockCompletionEngine
from mock_completions.inference.tokenizer import get_token_counter
from mock_completions.models.request import CompletionRequest
from mock_completions.models.response import Usage


@pytest.fixture
def settings():
    return Settings(default_encoding="cl100k_base", logprobs_seed=42, max_log_text_chars=100)


@pytest.fixture
def logger():
    return structlog.get_logger()


@pytest.fixture
def engine(settings, logger):
    return MockCompletionEngine(settings=settings, logger=logger)


class TestMockCompletionEngine:
    def test_warm_up_success(self, engine):
        assert engine.tokenizer_ready() is False
        engine.warm_up()
        assert engine.tokenizer_ready() is True

    def test_warm_up_loads_every_family(self, engine):
        with patch("mock_completions.inference.engine.load_encoding") as load:
            engine.warm_up()
        assert [c.args[0] for c in load.call_args_list] == list(SUPPORTED_ENCODINGS)

    def test_warm_up_failure_is_logged_not_raised(self, engine):
        with patch(
            "mock_completions.inference.engine.load_encoding",
            side_effect=EncodingError("download failed"),
        ):
            engine.warm_up()
        assert engine.tokenizer_ready() is False

    def test_other_family_failing_keeps_default_ready(self, engine):
        def fake_load(name):
            if name == "p50k_base":
                raise EncodingError("download failed")
            return MagicMock()

        with patch("mock_completions.inference.engine.load_encoding", side_effect=fake_load):
            engine.warm_up()
        assert engine.tokenizer_ready() is True

    def test_response_envelope(self, engine):
        req = CompletionRequest(model="gpt-3.5-turbo-instruct", prompt="Say this is a test", n=2)
        response = engine.create_completion(req)

        assert response.id.startswith("cmpl-mock-id-")
        assert response.object == "text_completion"
        assert response.model == "gpt-3.5-turbo-instruct"
        assert response.created > 0
        assert [c.index for c in response.choices] == [0, 1]

    def test_ids_are_unique(self, engine):
        req = CompletionRequest(model="gpt-4")
        assert engine.create_completion(req).id != engine.create_completion(req).id

    def test_usage_counts_prompt_and_all_choices(self, engine):
        req = CompletionRequest(model="gpt-4", prompt="hello world", echo=True, n=3)
        response = engine.create_completion(req)
        counter = get_token_counter("gpt-4")

        assert response.usage.prompt_tokens == counter.count("hello world")
        assert response.usage.completion_tokens == 3 * counter.count("hello world")
        assert (
            response.usage.total_tokens
            == response.usage.prompt_tokens + response.usage.completion_tokens
        )

    def test_usage_built_by_token_counter(self, engine):
        counter = MagicMock()
        counter.usage.return_value = Usage(prompt_tokens=5, completion_tokens=7, total_tokens=12)
        req = CompletionRequest(model="gpt-4", prompt="a b", echo=True, n=2)
        with patch(
            "mock_completions.inference.engine.get_token_counter", return_value=counter
        ):
            response = engine.create_completion(req)

        counter.usage.assert_called_once_with("a b", ["a b", "a b"])
        assert response.usage.total_tokens == 12

    def test_usage_without_prompt(self, engine):
        response = engine.create_completion(CompletionRequest(model="gpt-4"))
        assert response.usage.prompt_tokens == 0
        assert response.usage.completion_tokens == 0
        assert response.usage.total_tokens == 0

    def test_usage_falls_back_to_word_count(self, engine):
        req = CompletionRequest(model="gpt-4", prompt="one two three", echo=True)
        with patch(
            "mock_completions.inference.engine.get_token_counter",
            side_effect=EncodingError("no table"),
        ):
            response = engine.create_completion(req)

        assert response.usage.prompt_tokens == 3
        assert response.usage.completion_tokens == 3
        assert response.usage.total_tokens == 6

    def test_stop_string_is_normalized(self, engine):
        req = CompletionRequest(
            model="gpt-4", prompt="hello world end", echo=True, stop="world"
        )
        choice = engine.create_completion(req).choices[0]
        assert choice.text == "hello "
        assert choice.finish_reason == "stop"

    def test_seeded_logprobs_are_repeatable(self, engine):
        req = CompletionRequest(model="gpt-4", prompt="one two three", echo=True, logprobs=2)
        first = engine.create_completion(req).choices[0].logprobs
        second = engine.create_completion(req).choices[0].logprobs
        assert first == second

    def test_injected_random_source(self, settings, logger):
        calls = []

        def factory():
            calls.append(1)
            return random.Random(0)

        engine = MockCompletionEngine(settings=settings, logger=logger, rng_factory=factory)
        engine.create_completion(
            CompletionRequest(model="gpt-4", prompt="a b", echo=True, logprobs=1, n=2)
        )
        assert len(calls) == 1
