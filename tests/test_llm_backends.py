"""
Tests for the HTTP model backends and the backend registry.

Run with:
$ pytest -q
"""

import httpx
import pytest

from expensebot.agent.llm_backends import (
    GeminiBackend,
    ModelBackendError,
    TGIBackend,
    load_backend,
)


@pytest.fixture
def serve(monkeypatch):
    """Route every httpx.AsyncClient request to *handler* instead of the network."""
    real_client = httpx.AsyncClient

    def _serve(handler):
        monkeypatch.setattr(
            httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )

    return _serve


@pytest.mark.asyncio
async def test_gemini_returns_candidate_text(serve) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": '{"tool_name": "x"}'}]}}]}
        )

    serve(handler)
    assert await GeminiBackend().complete("hello") == '{"tool_name": "x"}'
    assert ":generateContent" in str(seen[0].url)


@pytest.mark.asyncio
async def test_error_status_is_a_backend_error(serve) -> None:
    serve(lambda request: httpx.Response(503, text="overloaded"))
    with pytest.raises(ModelBackendError):
        await GeminiBackend().complete("hello")


@pytest.mark.asyncio
async def test_unexpected_body_is_a_backend_error(serve) -> None:
    serve(lambda request: httpx.Response(200, json={"candidates": []}))
    with pytest.raises(ModelBackendError):
        await GeminiBackend().complete("hello")


@pytest.mark.asyncio
async def test_tgi_generated_text(serve) -> None:
    serve(lambda request: httpx.Response(200, json={"generated_text": "{}"}))
    assert await TGIBackend(timeout=1.0).complete("hello") == "{}"


def test_load_backend() -> None:
    assert isinstance(load_backend("TGI"), TGIBackend)
    with pytest.raises(ValueError):
        load_backend("nope")
