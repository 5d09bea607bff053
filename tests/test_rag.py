"""
Tests for the Semantic Retrieval Pipeline.

Real Chroma and NetworkX stores; the chat model is scripted.
"""

import json

import pytest

from meetgraph.knowledge.embeddings import EmbeddingError
from meetgraph.knowledge.vector_store import VectorHit
from meetgraph.knowledge.schemas import OwnerType
from meetgraph.query.rag import (
    DEFAULT_SUMMARY,
    FALLBACK_SUMMARY,
    NO_RESULTS_SUMMARY,
    RagPipeline,
    build_context,
    parse_summary,
)
from meetgraph.query.schemas import OutcomeStatus


def _hit(owner_id: str, text: str, distance: float) -> VectorHit:
    return VectorHit(
        record_id=f"r-{owner_id}-{distance}",
        owner_type=OwnerType.PERSON,
        owner_id=owner_id,
        text=text,
        distance=distance,
    )


class TestHelpers:
    """Context block and output parsing."""

    def test_context_lines_carry_relevance(self) -> None:
        context = build_context([_hit("a", "Ada builds compilers", 0.25)], max_chars=500)
        assert context == "- Ada builds compilers (relevance: 0.75)"

    def test_context_is_bounded(self) -> None:
        hits = [_hit(str(i), "x" * 50, 0.1) for i in range(10)]
        context = build_context(hits, max_chars=200)
        assert len(context) <= 200
        assert context.count("\n") < 9

    def test_parse_accepts_fenced_json(self) -> None:
        parsed = parse_summary('```json\n{"results": [], "summary": "ok"}\n```')
        assert parsed == {"results": [], "summary": "ok"}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", "", "{'single': 'quotes'}"])
    def test_parse_rejects_non_objects(self, raw: str) -> None:
        assert parse_summary(raw) is None


class TestRagPipeline:
    """End-to-end runs of the semantic pipeline."""

    @pytest.mark.asyncio
    async def test_zero_embeddings_returns_no_results(self, rag: RagPipeline, llm) -> None:
        outcome = await rag.run("Who works in AI?")

        assert outcome.status is OutcomeStatus.EMPTY
        assert outcome.results == []
        assert outcome.summary == NO_RESULTS_SUMMARY
        assert outcome.mode == "rag"
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_model_answer_is_used(self, rag: RagPipeline, llm, network) -> None:
        bob = network["bob"]
        llm.queue(json.dumps({
            "results": [{
                "id": bob.id,
                "name": "Bob",
                "company": "DeepCo",
                "jobTitle": "AI Engineer",
                "why": "Works on machine learning",
                "event": {"name": "PyCon Meetup"},
                "score": 0.9,
            }],
            "summary": "Bob works in AI.",
        }))

        outcome = await rag.run("Who works in AI?")

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.summary == "Bob works in AI."
        assert [r.id for r in outcome.results] == [bob.id]
        assert outcome.results[0].job_title == "AI Engineer"
        assert outcome.results[0].event.name == "PyCon Meetup"

    @pytest.mark.asyncio
    async def test_prompt_contains_context_and_candidates(self, rag: RagPipeline, llm, network) -> None:
        llm.queue('{"results": [], "summary": "none"}')

        await rag.run("Who works in AI?")

        prompt = llm.prompts[0]
        assert "(relevance: " in prompt
        assert network["bob"].id in prompt
        assert "Who works in AI?" in prompt

    @pytest.mark.asyncio
    async def test_malformed_json_falls_back_to_closest_records(
        self, rag: RagPipeline, llm, network
    ) -> None:
        llm.queue("Sure! Bob is your person.")

        outcome = await rag.run("Who works in AI?")

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.summary == FALLBACK_SUMMARY
        assert 0 < len(outcome.results) <= 5
        ids = [r.id for r in outcome.results]
        assert network["bob"].id in ids
        assert len(ids) == len(set(ids))
        for result in outcome.results:
            assert len(result.why) <= 100
            assert result.score is not None

    @pytest.mark.asyncio
    async def test_fallback_keeps_distance_order(self, embedder, graph_store, generator, llm, network) -> None:
        class FixedIndex:
            async def asearch(self, embedding, threshold, limit):
                return [
                    _hit(network["carol"].id, "Carol designs systems", 0.05),
                    _hit("unknown-owner", "orphaned record", 0.06),
                    _hit(network["bob"].id, "Bob does AI", 0.2),
                    _hit(network["carol"].id, "Carol again", 0.3),
                ]

        pipeline = RagPipeline(embedder, FixedIndex(), graph_store, generator, fallback_count=5)
        llm.queue("<<not json>>")

        outcome = await pipeline.run("anything")

        assert [r.id for r in outcome.results] == [network["carol"].id, network["bob"].id]
        assert outcome.results[0].why == "Carol designs systems"
        assert outcome.results[0].score == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_invalid_items_are_dropped(self, rag: RagPipeline, llm, network) -> None:
        bob = network["bob"]
        llm.queue(json.dumps({
            "results": [
                {"name": "No id"},
                {"id": "someone-not-retrieved", "name": "Ghost"},
                "a string",
                {"id": bob.id, "name": "Bob", "why": "AI"},
            ],
        }))

        outcome = await rag.run("Who works in AI?")

        assert [r.id for r in outcome.results] == [bob.id]
        # Blank fields are filled from the stored profile
        assert outcome.results[0].company == "DeepCo"
        assert outcome.summary == DEFAULT_SUMMARY

    @pytest.mark.asyncio
    async def test_bare_event_name_keeps_the_contact(self, rag: RagPipeline, llm, network) -> None:
        bob = network["bob"]
        llm.queue(json.dumps({
            "results": [{
                "id": bob.id,
                "name": "Bob",
                "company": "DeepCo",
                "jobTitle": "AI Engineer",
                "why": "Works on machine learning",
                "event": "PyCon Meetup",
                "score": 0.9,
            }],
            "summary": "Bob works in AI.",
        }))

        outcome = await rag.run("Who works in AI?")

        assert outcome.status is OutcomeStatus.SUCCESS
        assert [r.id for r in outcome.results] == [bob.id]
        assert outcome.results[0].event.name == "PyCon Meetup"
        assert outcome.summary == "Bob works in AI."

    @pytest.mark.asyncio
    async def test_malformed_optional_fields_are_dropped(self, rag: RagPipeline, llm, network) -> None:
        bob = network["bob"]
        llm.queue(json.dumps({
            "results": [{"id": bob.id, "name": "Bob", "why": "AI", "event": 42, "score": "high"}],
            "summary": "Bob works in AI.",
        }))

        outcome = await rag.run("Who works in AI?")

        assert [r.id for r in outcome.results] == [bob.id]
        assert outcome.results[0].event is None
        assert outcome.results[0].score is None
        assert outcome.results[0].why == "AI"

    @pytest.mark.asyncio
    async def test_no_surviving_items_falls_back_to_closest_records(
        self, rag: RagPipeline, llm, network
    ) -> None:
        llm.queue(json.dumps({
            "results": [{"id": "someone-not-retrieved", "name": "Ghost"}],
            "summary": "Ghost works in AI.",
        }))

        outcome = await rag.run("Who works in AI?")

        assert outcome.status is OutcomeStatus.SUCCESS
        assert outcome.summary == FALLBACK_SUMMARY
        assert network["bob"].id in [r.id for r in outcome.results]

    @pytest.mark.asyncio
    async def test_generation_failure_is_an_error_outcome(self, rag: RagPipeline, llm, network) -> None:
        llm.queue(RuntimeError("provider down"))

        outcome = await rag.run("Who works in AI?")

        assert outcome.status is OutcomeStatus.ERROR
        assert "provider down" in str(outcome.error)

    @pytest.mark.asyncio
    async def test_malformed_embedding_is_an_error_outcome(
        self, vector_store, graph_store, generator
    ) -> None:
        class BrokenEmbedder:
            async def embed(self, text: str) -> list[float]:
                raise EmbeddingError("Embedding provider returned an empty vector")

        pipeline = RagPipeline(BrokenEmbedder(), vector_store, graph_store, generator)

        outcome = await pipeline.run("Who works in AI?")

        assert outcome.status is OutcomeStatus.ERROR
        assert outcome.results == []
