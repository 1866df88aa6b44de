"""Command line entry point.

Usage:
    askdocs ingest -f ./docs -n handbook            # load markdown into a collection
    askdocs query -q "How do I deploy?" -n handbook  # show the nearest chunks
    askdocs ask -q "How do I deploy?" -n handbook -m llama3.1
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog

from askdocs import config
from askdocs.config import AskSettings, IngestSettings, QuerySettings, load_config_file
from askdocs.errors import AskDocsError, ConfigurationError
from askdocs.llm_client import OllamaChatModel, OllamaClient
from askdocs.rag.chunker import CHUNKERS, create_chunker
from askdocs.rag.embedder import OllamaEmbedder
from askdocs.rag.grader import RelevanceGrader
from askdocs.rag.ingest import IngestPipeline
from askdocs.rag.loaders import LOADERS, create_loader
from askdocs.rag.qa import AskPipeline, AskStatus
from askdocs.rag.retriever import Retriever
from askdocs.rag.synthesizer import AnswerSynthesizer
from askdocs.rag.vector_store import open_vector_store

logger = structlog.get_logger()

EXIT_ERROR = 1
EXIT_CONFIGURATION = 2
EXIT_INTERRUPTED = 130


def configure_logging(level: str) -> None:
    """Send structured logs to stderr so stdout only carries command output."""
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        raise ConfigurationError(f"unknown log level [{level}]")

    logging.basicConfig(stream=sys.stderr, level=numeric_level, format="%(message)s", force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", type=Path, default=None, help=f"config file (default: {config.DEFAULT_CONFIG_PATH})"
    )
    common.add_argument("--ollama-url", default=None, help=f"Ollama URL (default: {config.OLLAMA_BASE_URL})")
    common.add_argument("--log-level", default=None, help=f"log level (default: {config.LOG_LEVEL})")
    common.add_argument("-d", "--database-url", default=None, help=f"URL of vector database (default: {config.DATABASE_URL})")
    common.add_argument("-n", "--database-name", default=None, help="Name of vector database")
    common.add_argument(
        "-e", "--embedding-model", default=None, help=f"Name of embedding model (default: {config.EMBEDDING_MODEL})"
    )

    parser = argparse.ArgumentParser(
        prog="askdocs",
        description="Retrieval augmented generation over a folder of markdown documents",
    )
    commands = parser.add_subparsers(dest="command", metavar="{ingest,query,ask}")

    ingest = commands.add_parser(
        "ingest", aliases=["load"], parents=[common], help="Load documents into a vector database"
    )
    ingest.add_argument("-f", "--document-path", type=Path, default=None, help="Path to document file(s)")
    ingest.add_argument("--splitter-chunk-size", type=int, default=None, help=f"Chunk size for splitter (default: {config.CHUNK_SIZE})")
    ingest.add_argument("--splitter-chunk-overlap", type=int, default=None, help=f"Chunk overlap for splitter (default: {config.CHUNK_OVERLAP})")
    ingest.add_argument("--base-source-url", default=None, help="Base source URL")
    ingest.add_argument("--loader", default=None, help=f"Document loader {sorted(LOADERS)} (default: markdown)")
    ingest.add_argument("--splitter", default=None, help=f"Text splitter {sorted(CHUNKERS)} (default: markdown)")
    ingest.add_argument("--batch-size", type=int, default=None, help=f"Chunks per write (default: {config.VECTOR_STORE_BATCH_SIZE})")
    ingest.set_defaults(command="ingest")

    query = commands.add_parser(
        "query", parents=[common], help="Query against documents stored in the specified vector database"
    )
    query.add_argument("-q", "--question", default=None, help="Query")
    query.add_argument("-r", "--result-count", type=int, default=None, help=f"Number of results to return (default: {config.RETRIEVAL_TOP_K})")
    query.add_argument("--score-threshold", type=float, default=None, help="Minimum similarity score (default: 0.0)")

    ask = commands.add_parser(
        "ask", parents=[common], help="Ask a question on the documents stored in the specified vector database"
    )
    ask.add_argument("-q", "--question", default=None, help="Question to ask")
    ask.add_argument("-m", "--model", default=None, help="Name of the model")
    ask.add_argument("-r", "--result-count", type=int, default=None, help=f"Number of document sections to use (default: {config.RETRIEVAL_TOP_K})")
    ask.add_argument("--score-threshold", type=float, default=None, help=f"Minimum similarity score (default: {config.SCORE_THRESHOLD})")
    ask.add_argument("--grader-concurrency", type=int, default=None, help=f"Parallel grading calls (default: {config.GRADER_CONCURRENCY})")

    return parser


class OptionResolver:
    """Resolves options: command line, then config file, then default."""

    def __init__(self, args: argparse.Namespace, file_config: Dict[str, Any]):
        self.args = args
        self.file_config = file_config

    def value(self, name: str, default: Any = None) -> Any:
        value = getattr(self.args, name, None)
        if value is None:
            value = self.file_config.get(name)
        return default if value is None else value

    def required(self, name: str) -> Any:
        value = self.value(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            flag = "--" + name.replace("_", "-")
            raise ConfigurationError(f'required option "{flag}" not set')
        return value

    def number(self, name: str, cast: Callable[[Any], Any], default: Any, minimum: Any = None) -> Any:
        raw = self.value(name, default)
        try:
            value = cast(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"option --{name.replace('_', '-')} must be a number, got [{raw}]") from None
        if minimum is not None and value < minimum:
            raise ConfigurationError(f"option --{name.replace('_', '-')} must be >= {minimum}, got {value}")
        return value

    def http_url(self, name: str, default: str) -> str:
        raw = self.value(name, default)
        try:
            url = httpx.URL(str(raw))
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"option --{name.replace('_', '-')} is not a valid URL [{raw}]: {e}") from None
        if url.scheme not in ("http", "https") or not url.host:
            raise ConfigurationError(f"option --{name.replace('_', '-')} must be an http(s) URL, got [{raw}]")
        return str(raw)

    def choice(self, name: str, choices: Any, default: str) -> str:
        value = self.value(name, default)
        if value not in choices:
            raise ConfigurationError(f"option --{name.replace('_', '-')} must be one of {sorted(choices)}, got [{value}]")
        return value


def build_ingest_settings(opts: OptionResolver) -> IngestSettings:
    document_path = Path(opts.required("document_path"))
    database_name = opts.required("database_name")
    chunk_size = opts.number("splitter_chunk_size", int, config.CHUNK_SIZE, minimum=1)
    chunk_overlap = opts.number("splitter_chunk_overlap", int, config.CHUNK_OVERLAP, minimum=0)
    if chunk_overlap >= chunk_size:
        raise ConfigurationError(
            f"splitter chunk overlap ({chunk_overlap}) must be less than chunk size ({chunk_size})"
        )

    return IngestSettings(
        document_path=document_path,
        database_name=database_name,
        database_url=opts.value("database_url", config.DATABASE_URL),
        embedding_model=opts.value("embedding_model", config.EMBEDDING_MODEL),
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        base_source_url=opts.value("base_source_url") or None,
        loader=opts.choice("loader", LOADERS, "markdown"),
        splitter=opts.choice("splitter", CHUNKERS, "markdown"),
        batch_size=opts.number("batch_size", int, config.VECTOR_STORE_BATCH_SIZE, minimum=1),
        ollama_url=opts.http_url("ollama_url", config.OLLAMA_BASE_URL),
    )


def build_query_settings(opts: OptionResolver) -> QuerySettings:
    return QuerySettings(
        question=opts.required("question"),
        database_name=opts.required("database_name"),
        database_url=opts.value("database_url", config.DATABASE_URL),
        embedding_model=opts.value("embedding_model", config.EMBEDDING_MODEL),
        result_count=opts.number("result_count", int, config.RETRIEVAL_TOP_K, minimum=1),
        score_threshold=opts.number("score_threshold", float, 0.0),
        ollama_url=opts.http_url("ollama_url", config.OLLAMA_BASE_URL),
    )


def build_ask_settings(opts: OptionResolver) -> AskSettings:
    return AskSettings(
        question=opts.required("question"),
        database_name=opts.required("database_name"),
        model=opts.required("model"),
        database_url=opts.value("database_url", config.DATABASE_URL),
        embedding_model=opts.value("embedding_model", config.EMBEDDING_MODEL),
        result_count=opts.number("result_count", int, config.RETRIEVAL_TOP_K, minimum=1),
        score_threshold=opts.number("score_threshold", float, config.SCORE_THRESHOLD),
        grader_concurrency=opts.number("grader_concurrency", int, config.GRADER_CONCURRENCY, minimum=1),
        ollama_url=opts.http_url("ollama_url", config.OLLAMA_BASE_URL),
    )


SETTINGS_BUILDERS = {
    "ingest": build_ingest_settings,
    "query": build_query_settings,
    "ask": build_ask_settings,
}


async def run_ingest(settings: IngestSettings, pipeline: Optional[IngestPipeline] = None) -> None:
    print(
        f"about to load documents from [{settings.document_path}] to create a vector "
        f"database [{settings.database_name}] at [{settings.database_url}]..."
    )

    documents = create_loader(
        settings.loader, settings.document_path, settings.base_source_url
    ).load()
    print(f"retrieved [{len(documents)}] documents")

    if pipeline is None:
        pipeline = IngestPipeline(
            splitter=create_chunker(settings.splitter, settings.chunk_size, settings.chunk_overlap),
            store=open_vector_store(settings.database_url),
            embedder=OllamaEmbedder(settings.embedding_model, OllamaClient(base_url=settings.ollama_url)),
            database_name=settings.database_name,
            batch_size=settings.batch_size,
        )

    report = await pipeline.ingest(documents)

    print(f"stored [{report.chunks_stored}] of [{report.chunks_requested}] splitted documents in [{report.batches}] batches")
    print("vector database created")


async def run_query(settings: QuerySettings, retriever: Optional[Retriever] = None) -> None:
    if retriever is None:
        retriever = Retriever(
            store=open_vector_store(settings.database_url),
            embedder=OllamaEmbedder(settings.embedding_model, OllamaClient(base_url=settings.ollama_url)),
            database_name=settings.database_name,
            top_k=settings.result_count,
            score_threshold=settings.score_threshold,
        )

    results = await retriever.retrieve(settings.question)
    if not results:
        print(AskStatus.NO_REFERENCE_DOCUMENTS.value)
        return

    for number, result in enumerate(results, 1):
        print(f"Result {number}")
        print(f"Document ID: {result.id}")
        print(f"Score: {result.score:f}")
        print(f"Source: {result.source}")
        if "source_url" in result.metadata:
            print(f"Source URL: {result.metadata['source_url']}")
        print(f"Document: {result.content}\n")


def build_ask_pipeline(settings: AskSettings) -> AskPipeline:
    client = OllamaClient(base_url=settings.ollama_url)
    llm = OllamaChatModel(settings.model, client)
    return AskPipeline(
        retriever=Retriever(
            store=open_vector_store(settings.database_url),
            embedder=OllamaEmbedder(settings.embedding_model, client),
            database_name=settings.database_name,
            top_k=settings.result_count,
            score_threshold=settings.score_threshold,
        ),
        grader=RelevanceGrader(llm, max_concurrency=settings.grader_concurrency),
        synthesizer=AnswerSynthesizer(llm),
    )


async def run_ask(settings: AskSettings, pipeline: Optional[AskPipeline] = None) -> None:
    if pipeline is None:
        pipeline = build_ask_pipeline(settings)

    outcome = await pipeline.prepare(settings.question)
    if outcome.status is AskStatus.NO_REFERENCE_DOCUMENTS:
        print(outcome.message)
        return

    print(f"Found {len(outcome.retrieved)} document sections from database")

    if outcome.status is AskStatus.NO_RELEVANT_DOCUMENTS:
        print(outcome.message)
        return

    print(f"About to answer your question using {len(outcome.relevant)} relevant document sections...\n\n")

    async for fragment in pipeline.stream_answer(outcome):
        print(fragment, end="", flush=True)
    print()


COMMANDS = {
    "ingest": run_ingest,
    "query": run_query,
    "ask": run_ask,
}


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_CONFIGURATION)

    try:
        file_config = load_config_file(args.config)
        opts = OptionResolver(args, file_config)
        configure_logging(opts.value("log_level", config.LOG_LEVEL))
        settings = SETTINGS_BUILDERS[args.command](opts)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIGURATION)

    try:
        asyncio.run(COMMANDS[args.command](settings))
    except KeyboardInterrupt:
        print("\ncancelled", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except AskDocsError as e:
        logger.error("command_failed", command=args.command, error=str(e), error_type=type(e).__name__)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
