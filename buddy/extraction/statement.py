"""
Bank Statement Text Extraction

DESIGN DECISION: We only turn an uploaded statement into plain text.
The model does the interpretation, so this module:
1. Enforces the upload limits (size, PDF or CSV only)
2. Pulls text out of PDFs with pdfplumber
3. Decodes CSVs as text
4. Refuses files that yield (almost) no text

CRITICAL: A scanned PDF without a text layer is REJECTED with a hint to use
CSV. We do not OCR statements.
"""

import io
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

import pdfplumber
import structlog
from pydantic import BaseModel, Field

from buddy.config import get_settings

logger = structlog.get_logger(__name__)


class StatementError(Exception):
    """Base exception for statement uploads."""
    pass


class FileTooLargeError(StatementError):
    """File exceeds the upload limit."""
    pass


class UnsupportedFileTypeError(StatementError):
    """File is neither a PDF nor a CSV."""
    pass


class EmptyStatementError(StatementError):
    """File was read but holds too little text to be a statement."""
    pass


class StatementReadError(StatementError):
    """File could not be parsed at all."""
    pass


class StatementKind(str, Enum):
    PDF = "pdf"
    CSV = "csv"


class StatementFile(BaseModel):
    """An uploaded file as received."""

    filename: str = ""
    content_type: Optional[str] = None
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class ExtractedStatement(BaseModel):
    """Plain text pulled out of a statement file."""

    upload_id: UUID = Field(default_factory=uuid4)
    filename: str
    kind: StatementKind
    text: str


class StatementExtractor:
    """
    Turns uploaded PDF/CSV statements into text for the model.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts text - it does NOT look for transactions
    2. Limits are checked before the file is parsed
    """

    def __init__(
        self,
        max_size_bytes: Optional[int] = None,
        min_pdf_text_length: Optional[int] = None,
        min_csv_text_length: Optional[int] = None,
    ):
        app = get_settings().app
        self._max_size_bytes = max_size_bytes if max_size_bytes is not None else app.max_upload_size_bytes
        self._min_pdf = min_pdf_text_length if min_pdf_text_length is not None else app.min_pdf_text_length
        self._min_csv = min_csv_text_length if min_csv_text_length is not None else app.min_csv_text_length

    @property
    def max_size_mb(self) -> int:
        return self._max_size_bytes // (1024 * 1024)

    def detect_kind(self, file: StatementFile) -> StatementKind:
        """
        Decide between PDF and CSV from the content type or the extension.

        Raises:
            UnsupportedFileTypeError: neither PDF nor CSV
        """
        name = file.filename.lower()
        if file.content_type == "application/pdf" or name.endswith(".pdf"):
            return StatementKind.PDF
        if file.content_type == "text/csv" or name.endswith(".csv"):
            return StatementKind.CSV
        raise UnsupportedFileTypeError(
            "Unsupported file type. Please upload a PDF or CSV file."
        )

    def check_limits(self, file: StatementFile) -> StatementKind:
        """
        Check size then type.

        Raises:
            FileTooLargeError: larger than the upload limit
            UnsupportedFileTypeError: neither PDF nor CSV
        """
        if file.size > self._max_size_bytes:
            raise FileTooLargeError(
                f"File is too large. Maximum size is {self.max_size_mb}MB."
            )
        return self.detect_kind(file)

    def _pdf_text(self, data: bytes) -> str:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
        return "\n".join(pages)

    def _csv_text(self, data: bytes) -> str:
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            return data.decode("latin-1")

    def extract(self, file: StatementFile) -> ExtractedStatement:
        """
        Validate the upload and return its text.

        Raises:
            FileTooLargeError, UnsupportedFileTypeError: limits violated
            EmptyStatementError: too little text
            StatementReadError: file could not be parsed
        """
        kind = self.check_limits(file)

        try:
            if kind is StatementKind.PDF:
                text = self._pdf_text(file.data)
            else:
                text = self._csv_text(file.data)
        except Exception as e:
            logger.error("statement_read_failed", filename=file.filename, error=str(e))
            raise StatementReadError("Failed to read file. Please try a different file.")

        logger.info(
            "statement_text_extracted",
            filename=file.filename,
            kind=kind.value,
            length=len(text),
        )

        if kind is StatementKind.PDF and len(text.strip()) < self._min_pdf:
            raise EmptyStatementError(
                "Could not extract text from PDF. Please try CSV format."
            )
        if kind is StatementKind.CSV and len(text.strip()) < self._min_csv:
            raise EmptyStatementError("CSV file appears to be empty.")

        return ExtractedStatement(filename=file.filename, kind=kind, text=text)
