"""Plain-text extraction for uploaded files.

Dispatches on the file extension (falling back to the declared mime
type) to one of:

  .txt .md .csv .json  -> UTF-8 decode (latin-1 fallback)
  .html .htm           -> trafilatura main-text extraction
  .pdf                 -> PyMuPDF (fitz), page by page
  .docx                -> python-docx, paragraphs and table rows
  .xlsx                -> openpyxl, one "a | b | c" line per non-empty row

Binary parsers run in a worker thread so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import io
from pathlib import PurePath

import fitz  # PyMuPDF
import structlog
import trafilatura
from docx import Document
from openpyxl import load_workbook

from context_engine.interfaces.text_extractor import ITextExtractor
from context_engine.utils.errors import ExtractionFailedError, UnsupportedFormatError

logger = structlog.get_logger(logger_name=__name__)

_PLAIN_TEXT_EXTENSIONS = frozenset({".txt", ".md", ".csv", ".json"})
_HTML_EXTENSIONS = frozenset({".html", ".htm"})

_MIME_TO_EXTENSION: dict[str, str] = {
    "text/plain": ".txt",
    "text/markdown": ".md",
    "text/csv": ".csv",
    "application/json": ".json",
    "text/html": ".html",
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
}


class FileTextExtractor(ITextExtractor):
    """Turns an uploaded file blob into the plain text the engine ingests."""

    def supported_extensions(self) -> frozenset[str]:
        return _PLAIN_TEXT_EXTENSIONS | _HTML_EXTENSIONS | {".pdf", ".docx", ".xlsx"}

    async def extract(self, data: bytes, file_name: str, mime_type: str | None = None) -> str:
        extension = self._resolve_extension(file_name, mime_type)

        try:
            if extension in _PLAIN_TEXT_EXTENSIONS:
                text = self._decode(data)
            elif extension in _HTML_EXTENSIONS:
                text = trafilatura.extract(
                    self._decode(data), include_comments=False, include_tables=True
                ) or ""
            elif extension == ".pdf":
                text = await asyncio.to_thread(self._extract_pdf, data)
            elif extension == ".docx":
                text = await asyncio.to_thread(self._extract_docx, data)
            else:
                text = await asyncio.to_thread(self._extract_xlsx, data)
        except ExtractionFailedError:
            raise
        except Exception as exc:  # noqa: BLE001 - parser libraries raise assorted types
            raise ExtractionFailedError(
                message=f"Could not parse {file_name}: {exc}",
                provider_name="file_extractor",
                file_name=file_name,
            ) from exc

        text = text.strip()
        if not text:
            raise ExtractionFailedError(
                message=f"No text could be extracted from {file_name}",
                provider_name="file_extractor",
                file_name=file_name,
            )

        logger.info(
            "file_text_extracted",
            file_name=file_name,
            extension=extension,
            bytes=len(data),
            text_length=len(text),
        )
        return text

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_extension(self, file_name: str, mime_type: str | None) -> str:
        extension = PurePath(file_name).suffix.lower()
        if extension in self.supported_extensions():
            return extension
        if mime_type:
            mapped = _MIME_TO_EXTENSION.get(mime_type.split(";")[0].strip().lower())
            if mapped:
                return mapped
        raise UnsupportedFormatError(
            message=f"Unsupported file type for {file_name} ({mime_type or 'no mime type'})",
            provider_name="file_extractor",
            file_name=file_name,
            mime_type=mime_type,
        )

    @staticmethod
    def _decode(data: bytes) -> str:
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            return data.decode("latin-1")

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        pages: list[str] = []
        with fitz.open(stream=data, filetype="pdf") as doc:
            for page in doc:
                text = page.get_text("text").strip()
                if text:
                    pages.append(text)
        return "\n\n".join(pages)

    @staticmethod
    def _extract_docx(data: bytes) -> str:
        doc = Document(io.BytesIO(data))
        parts = [para.text.strip() for para in doc.paragraphs if para.text.strip()]
        for table in doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    parts.append(" | ".join(cells))
        return "\n\n".join(parts)

    @staticmethod
    def _extract_xlsx(data: bytes) -> str:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        sheets: list[str] = []
        try:
            for sheet in workbook.worksheets:
                rows: list[str] = []
                for row in sheet.iter_rows(values_only=True):
                    cells = ["" if value is None else str(value) for value in row]
                    if any(cell.strip() for cell in cells):
                        rows.append(" | ".join(cells))
                if rows:
                    sheets.append(f"[Sheet: {sheet.title}]\n" + "\n".join(rows))
        finally:
            workbook.close()
        return "\n\n".join(sheets)
