"""Document loaders producing Documents with provenance metadata.

Handles:
- Recursive markdown directory discovery in a stable order
- Notion "Markdown & CSV" exports
- Relative, forward-slash source paths and optional source URLs
"""
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Sequence

import structlog

from askdocs.errors import LoadError
from askdocs.rag.documents import Document

logger = structlog.get_logger()


class Loader(Protocol):
    def load(self) -> List[Document]:
        ...


def build_source_url(base_source_url: str, source: str) -> str:
    """Join a base URL and a relative forward-slash source path."""
    return f"{base_source_url.rstrip('/')}/{source.lstrip('/')}"


def _read_document(
    root: Path, file_path: Path, base_source_url: Optional[str], encoding: str
) -> Document:
    try:
        content = file_path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        logger.error("document_read_failed", path=str(file_path), error=str(e))
        raise LoadError(f"unable to read file [{file_path}]: {e}") from e

    source = file_path.relative_to(root).as_posix()
    metadata = {"source": source}
    if base_source_url:
        metadata["source_url"] = build_source_url(base_source_url, source)

    return Document(content=content, metadata=metadata)


def _check_root(root: Path) -> None:
    if not root.exists():
        raise LoadError(f"document path not found: {root}")
    if not root.is_dir():
        raise LoadError(f"document path is not a directory: {root}")


class MarkdownDirectoryLoader:
    """Loads every markdown file below a directory, recursively."""

    def __init__(
        self,
        root: Path,
        base_source_url: Optional[str] = None,
        extensions: Sequence[str] = (".md",),
        encoding: str = "utf-8",
    ):
        """Initialize the loader.

        Args:
            root: Directory to walk
            base_source_url: Optional base URL used to build "source_url"
            extensions: File extensions treated as documents
            encoding: Text encoding of the files
        """
        self.root = Path(root)
        self.base_source_url = base_source_url
        self.extensions = tuple(extensions)
        self.encoding = encoding

    def _walk(self, directory: Path) -> Iterator[Path]:
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise LoadError(f"unable to loop through directory [{directory}]: {e}") from e

        for entry in entries:
            if entry.is_dir() and not entry.is_symlink():
                yield from self._walk(entry)
            elif entry.is_file() and entry.suffix in self.extensions:
                yield entry

    def discover_files(self) -> List[Path]:
        """Find document files under the root, in sorted walk order.

        Raises:
            LoadError: If the root is missing or a directory cannot be listed
        """
        _check_root(self.root)
        files = list(self._walk(self.root))

        logger.info("markdown_files_discovered", count=len(files), root=str(self.root))

        return files

    def load(self) -> List[Document]:
        """Read every discovered file into a Document.

        Raises:
            LoadError: If any file cannot be read; nothing is returned then
        """
        return [
            _read_document(self.root, path, self.base_source_url, self.encoding)
            for path in self.discover_files()
        ]


class NotionExportLoader:
    """Loads the markdown pages at the top level of a Notion export."""

    def __init__(self, root: Path, base_source_url: Optional[str] = None):
        self.root = Path(root)
        self.base_source_url = base_source_url

    def load(self) -> List[Document]:
        _check_root(self.root)
        try:
            pages = sorted(
                (p for p in self.root.glob("*.md") if p.is_file()),
                key=lambda p: p.name,
            )
        except OSError as e:
            raise LoadError(f"unable to loop through directory [{self.root}]: {e}") from e

        logger.info("notion_pages_discovered", count=len(pages), root=str(self.root))

        return [
            _read_document(self.root, page, self.base_source_url, "utf-8")
            for page in pages
        ]


LOADERS = {
    "markdown": MarkdownDirectoryLoader,
    "notion": NotionExportLoader,
}


def create_loader(
    kind: str, root: Path, base_source_url: Optional[str] = None
) -> Loader:
    """Create the loader registered under ``kind``."""
    try:
        loader_cls = LOADERS[kind]
    except KeyError:
        raise ValueError(
            f"unknown loader [{kind}], expected one of {sorted(LOADERS)}"
        ) from None
    return loader_cls(root, base_source_url=base_source_url)
