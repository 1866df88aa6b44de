"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Markdown document loading with provenance metadata
- Document chunking with overlap
- Embedding generation
- Chroma and FAISS vector storage
- Semantic retrieval, relevance grading and answer streaming
"""
