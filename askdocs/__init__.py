"""askdocs: ask questions about a folder of markdown documents."""

__version__ = "0.1.0"
