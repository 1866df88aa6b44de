"""Tests for answer streaming."""
import asyncio

import pytest

from askdocs.errors import ProviderError
from askdocs.rag.documents import RetrievalResult
from askdocs.rag.synthesizer import ANSWER_SYSTEM_PROMPT, AnswerSynthesizer, build_answer_prompt
from conftest import FakeChatModel


def chunks(*contents):
    return [RetrievalResult(content=c, metadata={"source": "doc.md"}, score=0.9) for c in contents]


def test_prompt_joins_chunks_with_delimiter():
    prompt = build_answer_prompt("Who ships?", chunks("first chunk", "second chunk"))
    assert prompt == (
        "Documentation: first chunk ; second chunk \n\nQuestion: Who ships? \n\nAnswer: "
    )


@pytest.mark.asyncio
async def test_streams_fragments_in_generation_order():
    """Two retained chunks give a non-empty answer in generation order."""
    llm = FakeChatModel(fragments=["Deploys ", "happen ", "on ", "Tuesdays."])
    synthesizer = AnswerSynthesizer(llm)

    fragments = [f async for f in synthesizer.answer("When?", chunks("a", "b"))]

    assert fragments == ["Deploys ", "happen ", "on ", "Tuesdays."]
    assert "".join(fragments)
    assert llm.stream_calls == [(ANSWER_SYSTEM_PROMPT, build_answer_prompt("When?", chunks("a", "b")))]


@pytest.mark.asyncio
async def test_first_fragment_arrives_before_generation_ends():
    llm = FakeChatModel(fragments=["one", "two", "three"])
    stream = AnswerSynthesizer(llm).answer("q", chunks("a"))

    first = await stream.__anext__()

    assert first == "one"
    await stream.aclose()


@pytest.mark.asyncio
async def test_failure_mid_stream_keeps_emitted_fragments():
    llm = FakeChatModel(fragments=["one", "two", "three"], stream_error_after=2)
    received = []

    with pytest.raises(ProviderError, match="stream interrupted"):
        async for fragment in AnswerSynthesizer(llm).answer("q", chunks("a")):
            received.append(fragment)

    assert received == ["one", "two"]


@pytest.mark.asyncio
async def test_cancellation_stops_the_stream():
    """Cancelling the consumer propagates CancelledError instead of truncating silently."""
    llm = FakeChatModel(fragments=[f"f{i} " for i in range(1000)])
    received = []

    async def consume():
        async for fragment in AnswerSynthesizer(llm).answer("q", chunks("a")):
            received.append(fragment)
            await asyncio.sleep(0.001)

    task = asyncio.ensure_future(consume())
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert 0 < len(received) < 1000


@pytest.mark.asyncio
async def test_requires_chunks():
    with pytest.raises(ValueError):
        async for _ in AnswerSynthesizer(FakeChatModel()).answer("q", []):
            pass
