"""
Buddy HTTP API

Three endpoints forward transactions to the categorization agent:

- POST /api/completion         pasted text, streamed JSON array
- POST /api/upload-statement   PDF/CSV statement, streamed JSON array
- POST /api/categorize         pasted text, validated JSON array

Every error is a JSON body {"error": ..., "message"?: ...}.
"""

from typing import Optional
from urllib.parse import quote

import structlog
import uvicorn
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import TypeAdapter, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from buddy import __version__
from buddy.agents.expense_ai import (
    AIProviderError,
    ExpenseCategorizationAgent,
    build_expense_prompt,
    build_statement_prompt,
    format_categories,
    format_historical_expenses,
)
from buddy.audit import AuditLogger, configure_logging, create_correlation_id
from buddy.config import get_settings
from buddy.extraction import (
    EmptyStatementError,
    StatementError,
    StatementExtractor,
    StatementFile,
    StatementReadError,
)
from buddy.models.expense_ai import CategorizationRequest, CategoryRef, HistoricalExpense

logger = structlog.get_logger(__name__)

COMPLETION_ERROR = "Failed to process expense categorization request"
STATEMENT_ERROR = "Failed to process bank statement"

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"

_categories_adapter = TypeAdapter(list[CategoryRef])
_history_adapter = TypeAdapter(list[HistoricalExpense])


class BadRequestError(Exception):
    """Malformed input detected inside a handler."""
    pass


def _error(status_code: int, error: str, message: Optional[str] = None) -> JSONResponse:
    body = {"error": error}
    if message is not None:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=body)


def encode_header_text(text: str) -> str:
    """Percent-encode text for a header, leaving the characters encodeURIComponent leaves."""
    return quote(text, safe="!~*'()")


def _parse_json_field(adapter: TypeAdapter, raw: Optional[str], field_name: str):
    try:
        return adapter.validate_json(raw or "[]")
    except ValidationError as e:
        raise BadRequestError(f"Invalid {field_name}: {e.error_count()} errors")


def create_app(
    agent: Optional[ExpenseCategorizationAgent] = None,
    extractor: Optional[StatementExtractor] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> FastAPI:
    """
    Build the API.

    The agent and extractor are created on first use when not given, so
    the app starts without provider keys.
    """
    app = FastAPI(
        title="Buddy API",
        description="AI categorization of bank transactions for the Buddy expense tracker",
        version=__version__,
    )
    app.state.agent = agent
    app.state.extractor = extractor
    app.state.audit = audit_logger or AuditLogger()

    def get_agent() -> ExpenseCategorizationAgent:
        if app.state.agent is None:
            app.state.agent = ExpenseCategorizationAgent(audit_logger=app.state.audit)
        return app.state.agent

    def get_extractor() -> StatementExtractor:
        if app.state.extractor is None:
            app.state.extractor = StatementExtractor()
        return app.state.extractor

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_errors(exc)},
        )

    @app.exception_handler(BadRequestError)
    async def bad_request_handler(request: Request, exc: BadRequestError):
        return _error(400, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            return _error(405, "Method not allowed")
        return _error(exc.status_code, str(exc.detail))

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/completion")
    async def completion(body: CategorizationRequest):
        prompt = build_expense_prompt(
            transactions=body.prompt,
            categories=format_categories(body.expense_categories),
            historical_expenses=format_historical_expenses(body.historical_expenses),
        )
        try:
            chunks = await get_agent().stream(prompt)
        except AIProviderError as e:
            logger.error("completion_failed", error=str(e))
            return _error(500, COMPLETION_ERROR, str(e))
        return StreamingResponse(chunks, media_type=STREAM_MEDIA_TYPE)

    @app.post("/api/categorize")
    async def categorize(body: CategorizationRequest):
        try:
            expenses = await get_agent().categorize(
                body.prompt,
                body.expense_categories,
                body.historical_expenses,
            )
        except AIProviderError as e:
            logger.error("categorize_failed", error=str(e))
            return _error(500, COMPLETION_ERROR, str(e))
        return [e.model_dump(mode="json", by_alias=True) for e in expenses]

    @app.post("/api/upload-statement")
    async def upload_statement(
        file: Optional[UploadFile] = File(None),
        expenseCategories: Optional[str] = Form(None),
        historicalExpenses: Optional[str] = Form(None),
    ):
        if file is None:
            return _error(400, "No file provided")

        correlation_id = create_correlation_id()
        audit: AuditLogger = app.state.audit

        statement_file = StatementFile(
            filename=file.filename or "",
            content_type=file.content_type,
            data=await file.read(),
        )
        extractor = get_extractor()

        try:
            extractor.check_limits(statement_file)
        except StatementError as e:
            return _error(400, str(e))

        categories = _parse_json_field(_categories_adapter, expenseCategories, "expenseCategories")
        history = _parse_json_field(_history_adapter, historicalExpenses, "historicalExpenses")

        try:
            statement = extractor.extract(statement_file)
        except (EmptyStatementError, StatementReadError) as e:
            await audit.log_extraction_failed(
                upload_id=correlation_id,
                reason=str(e),
                correlation_id=correlation_id,
            )
            return _error(422, str(e))

        await audit.log_statement_uploaded(
            upload_id=statement.upload_id,
            filename=statement.filename,
            file_size=statement_file.size,
            correlation_id=correlation_id,
        )
        await audit.log_text_extracted(
            upload_id=statement.upload_id,
            kind=statement.kind.value,
            text_length=len(statement.text),
            correlation_id=correlation_id,
        )

        prompt = build_statement_prompt(statement.text, categories, history)
        logger.info("statement_prompt_built", prompt_length=len(prompt))

        try:
            chunks = await get_agent().stream(prompt, correlation_id=correlation_id)
        except AIProviderError as e:
            logger.error("statement_failed", error=str(e))
            return _error(500, STATEMENT_ERROR, str(e))

        return StreamingResponse(
            chunks,
            media_type=STREAM_MEDIA_TYPE,
            headers={"X-Extracted-Text": encode_header_text(statement.text)},
        )

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors reduced to location and message."""
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


def main() -> None:
    """Run the API with uvicorn."""
    settings = get_settings().app
    configure_logging(settings.log_level)
    uvicorn.run(
        "buddy.api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
