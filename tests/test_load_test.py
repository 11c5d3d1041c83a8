import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from scripts.load_test import _worker, build_payload, pct, run

URL = "http://localhost:8000/v1/completions"


def make_client(status_code=200, body=None):
    mock_client = MagicMock()
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = body if body is not None else {"choices": [{"index": 0}]}
    mock_client.post = AsyncMock(return_value=mock_response)
    return mock_client


class TestLoadTest:
    def test_build_payload(self):
        assert build_payload("gpt-4", "hi", 8, 2, True) == {
            "model": "gpt-4",
            "prompt": "hi",
            "max_tokens": 8,
            "n": 2,
            "echo": True,
        }

    @pytest.mark.asyncio
    async def test_worker_success(self):
        mock_client = make_client()
        latencies = []
        errors = []

        await _worker(mock_client, URL, build_payload("gpt-4", "test", 5, 1, False), latencies, errors)

        assert len(latencies) == 1
        assert latencies[0] >= 0
        assert errors == []
        mock_client.post.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_worker_http_error(self):
        mock_client = make_client(status_code=400)
        latencies = []
        errors = []

        await _worker(mock_client, URL, build_payload("", "test", 5, 1, False), latencies, errors)

        assert len(latencies) == 1
        assert errors == ["HTTP 400"]

    @pytest.mark.asyncio
    async def test_worker_choice_count_mismatch(self):
        mock_client = make_client(body={"choices": [{"index": 0}]})
        latencies = []
        errors = []

        await _worker(mock_client, URL, build_payload("gpt-4", "test", 5, 3, False), latencies, errors)

        assert errors == ["unexpected choice count"]

    @pytest.mark.asyncio
    async def test_worker_exception(self):
        mock_client = MagicMock()
        mock_client.post = AsyncMock(side_effect=Exception("Connection failed"))
        latencies = []
        errors = []

        await _worker(mock_client, URL, build_payload("gpt-4", "test", 5, 1, False), latencies, errors)

        assert len(latencies) == 1
        assert len(errors) == 1
        assert "Connection failed" in errors[0]

    @pytest.mark.asyncio
    async def test_run_integration(self):
        with patch("scripts.load_test.httpx.AsyncClient") as mock_client_class:
            mock_client_class.return_value.__aenter__.return_value = make_client()

            with patch("builtins.print") as mock_print:
                await run(
                    url=URL,
                    concurrency=2,
                    requests=5,
                    payload=build_payload("gpt-4", "test", 10, 1, False),
                    timeout=30.0,
                )

                mock_print.assert_called_once()
                result = json.loads(mock_print.call_args[0][0])
                assert result["requests"] == 5
                assert result["concurrency"] == 2
                assert "qps" in result
                assert "p50" in result["latency_ms"]
                assert result["error_rate_percent"] == 0.0

    def test_pct_function(self):
        values = [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]

        assert pct(values, 0) == 10
        assert pct(values, 50) == 55
        assert pct(values, 100) == 100
        assert pct([42], 50) == 42
        assert pct([], 50) == 0.0

    def test_pct_edge_cases(self):
        values = [10, 20]
        assert pct(values, 0) == 10
        assert pct(values, 50) == 15
        assert pct(values, 100) == 20

        values = [1, 2, 3, 4, 5]
        assert pct(values, 25) == 2
        assert pct(values, 75) == 4
