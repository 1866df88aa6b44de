"""Streams an answer grounded in the chunks that passed grading."""
from typing import AsyncIterator, Protocol, Sequence

import structlog

from askdocs.rag.documents import RetrievalResult

logger = structlog.get_logger()

ANSWER_SYSTEM_PROMPT = """You are an assistant for question-answering tasks.
Use the following pieces of retrieved documentation to answer the question.
Please write in full sentences with correct spelling and punctuation. If it makes sense, use lists.
If the documentation does not contain the answer, just respond that you are unable to find an answer.
Explain the reasoning as well."""

ANSWER_USER_PROMPT = "Documentation: {documentation} \n\nQuestion: {question} \n\nAnswer: "

CONTEXT_DELIMITER = " ; "


class StreamingChatModel(Protocol):
    model: str

    def generate_stream(self, system_prompt: str, user_prompt: str) -> AsyncIterator[str]:
        ...


def build_answer_prompt(question: str, chunks: Sequence[RetrievalResult]) -> str:
    documentation = CONTEXT_DELIMITER.join(chunk.content for chunk in chunks)
    return ANSWER_USER_PROMPT.format(documentation=documentation, question=question)


class AnswerSynthesizer:
    def __init__(self, llm: StreamingChatModel):
        self.llm = llm

    async def answer(
        self, question: str, chunks: Sequence[RetrievalResult]
    ) -> AsyncIterator[str]:
        """Yield answer fragments in generation order.

        Raises:
            ValueError: If no chunks are given
            ProviderError: If generation fails; fragments already yielded stand
        """
        if not chunks:
            raise ValueError("cannot synthesize an answer without documents")

        logger.info("answer_generation_started", model=self.llm.model, chunks=len(chunks))

        fragments = 0
        async for fragment in self.llm.generate_stream(
            ANSWER_SYSTEM_PROMPT, build_answer_prompt(question, chunks)
        ):
            fragments += 1
            yield fragment

        logger.info("answer_generation_completed", model=self.llm.model, fragments=fragments)
