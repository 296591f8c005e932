"""Statement text extraction package."""

from buddy.extraction.statement import (
    EmptyStatementError,
    ExtractedStatement,
    FileTooLargeError,
    StatementError,
    StatementExtractor,
    StatementFile,
    StatementKind,
    StatementReadError,
    UnsupportedFileTypeError,
)

__all__ = [
    "EmptyStatementError",
    "ExtractedStatement",
    "FileTooLargeError",
    "StatementError",
    "StatementExtractor",
    "StatementFile",
    "StatementKind",
    "StatementReadError",
    "UnsupportedFileTypeError",
]
