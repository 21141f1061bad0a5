"""Tests for deadline-bounded retrieval."""

import asyncio

import httpx
import pytest

from conftest import FakeMongo, VoyageStub, embedding_response
from retrieval.context_builder import CONTEXT_PREAMBLE
from retrieval.guard import diagnose_timeout, retrieve_context
from retrieval.trace import ContextStep, QueryStep, TracePayload, VectorSearchStep


async def _hang(request):
    await asyncio.sleep(5)
    return embedding_response()


class TestCompletedRetrieval:
    @pytest.mark.asyncio
    async def test_context_step_appended(self, make_pipeline, sample_docs):
        pipeline = make_pipeline(VoyageStub(embedding_response()), FakeMongo(docs=sample_docs))

        result = await retrieve_context(pipeline, "revenue growth", timeout_seconds=5)

        assert not result.timed_out
        assert len(result.chunks) == 3
        assert result.context.startswith(CONTEXT_PREAMBLE)
        assert result.trace.kinds() == ["query", "embedding", "vector_search", "chunks", "context"]
        context_step = result.trace.steps[-1]
        assert isinstance(context_step, ContextStep)
        assert context_step.formatted_length == len(result.context)
        assert result.trace.frozen

    @pytest.mark.asyncio
    async def test_no_context_step_when_nothing_retrieved(self, make_pipeline):
        pipeline = make_pipeline(VoyageStub(embedding_response()), FakeMongo(), uri=None)

        result = await retrieve_context(pipeline, "What is the policy on refunds?", timeout_seconds=5)

        assert result.context == ""
        assert result.chunks == []
        assert result.trace.kinds() == ["query", "config"]


class TestTimeout:
    @pytest.mark.asyncio
    async def test_embedding_hang(self, make_pipeline):
        pipeline = make_pipeline(VoyageStub(_hang), FakeMongo())

        result = await retrieve_context(pipeline, "q", timeout_seconds=0.05)

        assert result.timed_out
        assert result.chunks == []
        assert result.context == ""
        assert result.trace.kinds() == ["query", "timeout", "timeout_diagnosis"]
        assert result.trace.steps[1].message == "RAG timed out after 0.05s"
        assert "VOYAGE_API_KEY" in result.trace.steps[2].message

    @pytest.mark.asyncio
    async def test_search_hang(self, make_pipeline):
        mongo = FakeMongo(delay=5)
        pipeline = make_pipeline(VoyageStub(embedding_response()), mongo)

        result = await retrieve_context(pipeline, "q", timeout_seconds=0.2)

        assert result.timed_out
        assert result.trace.kinds() == [
            "query", "embedding", "vector_search", "timeout", "timeout_diagnosis",
        ]
        assert "MONGODB_URI" in result.trace.steps[-1].message
        # connection released even though the call was cancelled
        assert mongo.closed == 1

    @pytest.mark.asyncio
    async def test_wire_form_after_timeout(self, make_pipeline):
        pipeline = make_pipeline(VoyageStub(_hang), FakeMongo())

        result = await retrieve_context(pipeline, "q", timeout_seconds=0.05)

        timeout = result.to_dict()["trace"]["steps"][1]
        assert timeout == {"step": "timeout", "message": "RAG timed out after 0.05s"}


class TestNeverRaises:
    @pytest.mark.asyncio
    async def test_unexpected_error(self, make_pipeline):
        pipeline = make_pipeline(VoyageStub(embedding_response()), FakeMongo())

        async def explode(query, recorder=None):
            raise RuntimeError("bug")

        pipeline.search_rag_with_trace = explode

        result = await retrieve_context(pipeline, "q", timeout_seconds=1)

        assert result.chunks == []
        assert not result.timed_out

    @pytest.mark.asyncio
    async def test_embedding_errors_are_not_timeouts(self, make_pipeline):
        pipeline = make_pipeline(VoyageStub(httpx.Response(401, json={"detail": "bad key"})), FakeMongo())

        result = await retrieve_context(pipeline, "q", timeout_seconds=5)

        assert not result.timed_out
        assert result.trace.kinds() == ["query", "embed_error"]


class TestDiagnosis:
    def test_nothing_recorded(self):
        assert diagnose_timeout(TracePayload()) is None

    def test_after_query(self):
        assert "embedding" in diagnose_timeout(TracePayload([QueryStep("q")])).lower()

    def test_after_vector_search(self):
        trace = TracePayload([QueryStep("q"), VectorSearchStep(100, 5, 10)])
        assert "vector search" in diagnose_timeout(trace)
