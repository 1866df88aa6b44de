"""Error hierarchy for the ingestion and question-answering pipelines."""
from typing import Optional


class AskDocsError(Exception):
    """Base class for every error raised by askdocs."""


class ConfigurationError(AskDocsError):
    """A required option is missing or an option value is invalid."""


class LoadError(AskDocsError):
    """Documents could not be read from the source location."""


class SplitError(AskDocsError):
    """A document could not be split into chunks."""

    def __init__(self, source: str, reason: str):
        self.source = source
        super().__init__(f"unable to split document [{source}]: {reason}")


class ProviderError(AskDocsError):
    """A call to the embedding, LLM or vector-store service failed."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"{stage}: {message}")


class BatchWriteError(ProviderError):
    """A batch of chunks could not be written to the vector collection."""

    def __init__(self, batch_number: int, start: int, end: int, message: str):
        self.batch_number = batch_number
        self.start = start
        self.end = end
        super().__init__(
            "store",
            f"batch {batch_number} (chunks {start}-{end - 1}) failed: {message}",
        )


class CollectionNotFoundError(ProviderError):
    """The named vector collection does not exist."""

    def __init__(self, name: str, database_url: Optional[str] = None):
        self.name = name
        location = f" at [{database_url}]" if database_url else ""
        super().__init__("retrieve", f"no such collection [{name}]{location}")


class QueryError(ProviderError):
    """The vector collection exists but querying it failed."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__("retrieve", f"failed to query collection [{name}]: {message}")


class ParseError(AskDocsError):
    """The grader reply is not exactly {"score": "yes"} or {"score": "no"}."""

    def __init__(self, reply: str, reason: str):
        self.reply = reply
        super().__init__(f"unable to parse grading response: {reason}")
