"""LLM-backed yes/no relevance grading of retrieved chunks."""
import asyncio
from typing import List, Literal, Protocol, Sequence

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from askdocs import config
from askdocs.errors import ParseError
from askdocs.rag.documents import RetrievalResult

logger = structlog.get_logger()

GRADER_SYSTEM_PROMPT = """You are a grader assessing relevance of a retrieved document to a user question.
If the document contains keywords related to the user question, grade it as relevant.
It does not need to be a stringent test. The goal is to filter out erroneous retrievals.
Give a binary score 'yes' or 'no' score to indicate whether the document is relevant to the question.
Provide the binary score as a JSON with a single key 'score' and no preamble or explanation."""

GRADER_USER_PROMPT = (
    "Here is the retrieved document: {document} \n\nHere is the user question: {question}"
)


class ChatModel(Protocol):
    model: str

    async def generate(
        self, system_prompt: str, user_prompt: str, json_output: bool = False
    ) -> str:
        ...


class GraderVerdict(BaseModel):
    """The only accepted grader reply: {"score": "yes"} or {"score": "no"}."""

    model_config = ConfigDict(extra="forbid", strict=True)

    score: Literal["yes", "no"]


def parse_verdict(reply: str) -> str:
    """Parse a grader reply strictly.

    Raises:
        ParseError: If the reply is not exactly the expected JSON object
    """
    try:
        verdict = GraderVerdict.model_validate_json(reply.strip())
    except ValidationError as e:
        raise ParseError(reply, f"{e.error_count()} validation error(s) in {reply[:100]!r}") from e
    return verdict.score


class RelevanceGrader:
    """Filters retrieved chunks with one LLM grading call per chunk."""

    def __init__(self, llm: ChatModel, max_concurrency: int = None):
        self.llm = llm
        self.max_concurrency = (
            config.GRADER_CONCURRENCY if max_concurrency is None else max_concurrency
        )

        if self.max_concurrency <= 0:
            raise ValueError(f"Concurrency must be positive, got {self.max_concurrency}")

    async def grade(self, question: str, content: str) -> str:
        """Grade one chunk; returns "yes" or "no".

        Raises:
            ProviderError: If the LLM call fails
            ParseError: If the reply has the wrong shape
        """
        reply = await self.llm.generate(
            GRADER_SYSTEM_PROMPT,
            GRADER_USER_PROMPT.format(document=content, question=question),
            json_output=True,
        )
        score = parse_verdict(reply)

        logger.debug("chunk_graded", score=score, content_preview=content[:60])

        return score

    async def filter_relevant(
        self, question: str, results: Sequence[RetrievalResult]
    ) -> List[RetrievalResult]:
        """Keep the results graded "yes", in their original order.

        Grading calls run concurrently, at most ``max_concurrency`` at a time.
        The first failure cancels the calls still pending and is re-raised.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def grade_one(result: RetrievalResult) -> str:
            async with semaphore:
                return await self.grade(question, result.content)

        tasks = [asyncio.ensure_future(grade_one(result)) for result in results]
        try:
            scores = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        relevant = [result for result, score in zip(results, scores) if score == "yes"]

        logger.info(
            "chunks_graded",
            graded=len(results),
            relevant=len(relevant),
            concurrency=self.max_concurrency,
        )

        return relevant
