"""
Unit Tests for the OpenAI embedding backend

The SDK client is patched out; tests check request shaping and how SDK
exceptions are translated onto the error taxonomy.
"""

from unittest.mock import MagicMock, patch

import httpx
import numpy as np
import openai
import pytest

from semantic_retrieval.core.errors import (
    EmbeddingError,
    InvalidInput,
    QuotaExceeded,
    UpstreamUnavailable,
)
from semantic_retrieval.embeddings import MockEmbeddings, OpenAIEmbeddings, get_embedding_backend
from semantic_retrieval.embeddings.openai_embeddings import translate_openai_error

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def _status_error(cls, status):
    response = httpx.Response(status, request=_REQUEST)
    return cls(f"status {status}", response=response, body=None)


@pytest.fixture
def sdk_client():
    client = MagicMock()
    response = MagicMock()
    response.data = [MagicMock(embedding=[0.1, 0.2, 0.3])]
    response.usage.total_tokens = 7
    response.model = "text-embedding-3-small"
    client.embeddings.create.return_value = response
    return client


@pytest.fixture
def backend(sdk_client):
    with patch("semantic_retrieval.embeddings.openai_embeddings.OpenAI", return_value=sdk_client):
        yield OpenAIEmbeddings(api_key="sk-test")


# ---------------------------------------------------------------------------
# REQUESTS
# ---------------------------------------------------------------------------


class TestOpenAIEmbeddings:
    """Request shaping."""

    def test_sdk_retries_disabled(self):
        with patch("semantic_retrieval.embeddings.openai_embeddings.OpenAI") as mock_openai:
            OpenAIEmbeddings(api_key="sk-test")
        assert mock_openai.call_args.kwargs["max_retries"] == 0

    def test_embed_text(self, backend, sdk_client):
        raw = backend.embed_text("hello", "document")

        assert raw.vector.dtype == np.float32
        assert raw.token_count == 7
        assert raw.model_id == "text-embedding-3-small"
        sdk_client.embeddings.create.assert_called_once_with(input="hello", model="text-embedding-3-small")

    def test_default_dimensions_by_model(self):
        with patch("semantic_retrieval.embeddings.openai_embeddings.OpenAI"):
            assert OpenAIEmbeddings(model="text-embedding-3-large").dimensions == 3072
            assert OpenAIEmbeddings().dimensions == 1536

    def test_shortened_dimensions_are_requested(self, sdk_client):
        with patch("semantic_retrieval.embeddings.openai_embeddings.OpenAI", return_value=sdk_client):
            backend = OpenAIEmbeddings(dimensions=256)
        backend.embed_text("hello")

        assert sdk_client.embeddings.create.call_args.kwargs["dimensions"] == 256

    def test_query_routing_uses_prefix_and_model(self, sdk_client):
        with patch("semantic_retrieval.embeddings.openai_embeddings.OpenAI", return_value=sdk_client):
            backend = OpenAIEmbeddings(
                model="doc-model",
                query_model="query-model",
                document_prefix="search_document: ",
                query_prefix="search_query: ",
            )

        backend.embed_text("find tsh", "query")
        assert sdk_client.embeddings.create.call_args.kwargs == {
            "input": "search_query: find tsh",
            "model": "query-model",
        }

        backend.embed_text("tsh article", "document")
        assert sdk_client.embeddings.create.call_args.kwargs == {
            "input": "search_document: tsh article",
            "model": "doc-model",
        }

    def test_sdk_error_is_translated(self, backend, sdk_client):
        sdk_client.embeddings.create.side_effect = openai.APIConnectionError(request=_REQUEST)
        with pytest.raises(UpstreamUnavailable):
            backend.embed_text("hello")


# ---------------------------------------------------------------------------
# ERROR TRANSLATION
# ---------------------------------------------------------------------------


class TestTranslateOpenAIError:
    """SDK exception -> taxonomy."""

    def test_rate_limit(self):
        assert isinstance(translate_openai_error(_status_error(openai.RateLimitError, 429)), QuotaExceeded)

    def test_connection_and_timeout(self):
        assert isinstance(translate_openai_error(openai.APIConnectionError(request=_REQUEST)), UpstreamUnavailable)
        assert isinstance(translate_openai_error(openai.APITimeoutError(request=_REQUEST)), UpstreamUnavailable)

    def test_server_error(self):
        error = translate_openai_error(_status_error(openai.InternalServerError, 503))
        assert isinstance(error, UpstreamUnavailable)
        assert error.retryable is True

    def test_bad_request(self):
        assert isinstance(translate_openai_error(_status_error(openai.BadRequestError, 400)), InvalidInput)

    def test_auth_error_is_not_retryable(self):
        error = translate_openai_error(_status_error(openai.AuthenticationError, 401))
        assert type(error) is EmbeddingError
        assert error.retryable is False

    def test_cause_is_kept(self):
        original = openai.APIConnectionError(request=_REQUEST)
        assert translate_openai_error(original).cause is original


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


class TestGetEmbeddingBackend:
    def test_mock(self):
        backend = get_embedding_backend(use_mock=True, dimensions=64)
        assert isinstance(backend, MockEmbeddings)
        assert backend.dimensions == 64

    def test_openai(self):
        with patch("semantic_retrieval.embeddings.openai_embeddings.OpenAI"):
            backend = get_embedding_backend(use_mock=False, api_key="sk-test")
        assert isinstance(backend, OpenAIEmbeddings)

    def test_mock_is_deterministic(self):
        backend = MockEmbeddings(dimensions=16)
        a = backend.embed_text("same")
        b = backend.embed_text("same")
        assert np.array_equal(a.vector, b.vector)
        assert not np.array_equal(a.vector, backend.embed_text("other").vector)
