"""Question answering: retrieve, grade, then stream an answer."""
import enum
from dataclasses import dataclass, field
from typing import AsyncIterator, List

import structlog

from askdocs.rag.documents import RetrievalResult
from askdocs.rag.grader import RelevanceGrader
from askdocs.rag.retriever import Retriever
from askdocs.rag.synthesizer import AnswerSynthesizer

logger = structlog.get_logger()


class AskStatus(enum.Enum):
    NO_REFERENCE_DOCUMENTS = "No reference documents found"
    NO_RELEVANT_DOCUMENTS = "No relevant documents found"
    READY = "ready"


@dataclass
class AskOutcome:
    """Where a question stands after retrieval and grading."""

    question: str
    status: AskStatus
    retrieved: List[RetrievalResult] = field(default_factory=list)
    relevant: List[RetrievalResult] = field(default_factory=list)

    @property
    def message(self) -> str:
        return self.status.value


class AskPipeline:
    """Retriever -> grader -> synthesizer, short-circuiting on empty results."""

    def __init__(
        self,
        retriever: Retriever,
        grader: RelevanceGrader,
        synthesizer: AnswerSynthesizer,
    ):
        self.retriever = retriever
        self.grader = grader
        self.synthesizer = synthesizer

    async def prepare(self, question: str) -> AskOutcome:
        """Retrieve and grade chunks for the question.

        The grader is skipped when nothing is retrieved.
        """
        retrieved = await self.retriever.retrieve(question)
        if not retrieved:
            logger.info("no_reference_documents", question_length=len(question))
            return AskOutcome(question, AskStatus.NO_REFERENCE_DOCUMENTS)

        relevant = await self.grader.filter_relevant(question, retrieved)
        if not relevant:
            logger.info("no_relevant_documents", retrieved=len(retrieved))
            return AskOutcome(question, AskStatus.NO_RELEVANT_DOCUMENTS, retrieved)

        return AskOutcome(question, AskStatus.READY, retrieved, relevant)

    def stream_answer(self, outcome: AskOutcome) -> AsyncIterator[str]:
        """Stream the answer for an outcome that is READY."""
        if outcome.status is not AskStatus.READY:
            raise ValueError(f"no answer to stream: {outcome.message}")
        return self.synthesizer.answer(outcome.question, outcome.relevant)
