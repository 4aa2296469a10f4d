"""Loads source documents from the docs directory.

Plain-text files become one :class:`RawDocument` each.  PDFs are read with
PyMuPDF (fitz) page by page and become one :class:`RawDocument` per page
that has extractable text, so chunks keep a page reference.
"""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF
import structlog

from ragchat.models.rag import RawDocument
from ragchat.utils.errors import DocumentNotFoundError

logger = structlog.get_logger(logger_name=__name__)

SUPPORTED_SUFFIXES = frozenset({".txt", ".pdf"})


class DocumentLoader:
    """Reads ``.txt`` and ``.pdf`` files from *docs_dir*."""

    def __init__(self, docs_dir: str | Path = "./docs") -> None:
        self._docs_dir = Path(docs_dir)

    @property
    def docs_dir(self) -> Path:
        return self._docs_dir

    def list_available_documents(self) -> list[str]:
        """Return the sorted file names of supported documents.

        A missing docs directory is treated as empty.
        """
        if not self._docs_dir.is_dir():
            return []
        return sorted(
            path.name
            for path in self._docs_dir.iterdir()
            if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES
        )

    def load_documents(self, names: list[str] | None = None) -> list[RawDocument]:
        """Load *names* (default: every available document) in order."""
        documents: list[RawDocument] = []
        for name in names if names is not None else self.list_available_documents():
            documents.extend(self.load_single_document(name))
        logger.info("documents_loaded", count=len(documents), docs_dir=str(self._docs_dir))
        return documents

    def load_single_document(self, name: str) -> list[RawDocument]:
        """Load one document by file name.

        Raises
        ------
        DocumentNotFoundError
            *name* is not a supported file directly inside the docs directory.
        """
        path = self._docs_dir / name
        if Path(name).name != name or not path.is_file():
            raise DocumentNotFoundError(message=f"Document '{name}' not found in {self._docs_dir}")

        suffix = path.suffix.lower()
        if suffix == ".txt":
            return [RawDocument(content=path.read_text(encoding="utf-8", errors="replace"), source=name)]
        if suffix == ".pdf":
            return [
                RawDocument(content=text, source=name, page=page_number)
                for page_number, text in self._extract_pages(path)
            ]
        raise DocumentNotFoundError(
            message=f"Document '{name}' has unsupported type '{suffix}'; expected .txt or .pdf"
        )

    @staticmethod
    def _extract_pages(path: Path) -> list[tuple[int, str]]:
        """Return ``(page_number, text)`` pairs; page numbers are 1-based."""
        try:
            doc = fitz.open(str(path))
        except Exception as exc:
            logger.error("pdf_open_failed", file_path=str(path), error=str(exc))
            return []

        pages: list[tuple[int, str]] = []
        try:
            for page_num in range(len(doc)):
                text = doc[page_num].get_text("text").strip()
                if text:
                    pages.append((page_num + 1, text))
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", file_path=str(path))
        return pages
