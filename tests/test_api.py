"""
Tests for the HTTP API with fake providers.
"""

from urllib.parse import unquote

import pytest
from fastapi.testclient import TestClient

from buddy.agents import ExpenseCategorizationAgent
from buddy.api.app import COMPLETION_ERROR, STATEMENT_ERROR, create_app, encode_header_text
from buddy.audit import AuditLogger
from buddy.extraction import StatementExtractor

from conftest import FakeProvider, make_agent


OUTPUT = '[{"amount": 45.2, "categoryId": "c1", "date": "2025-03-12", "description": "Supermarket"}]'
CSV_TEXT = "date,description,amount\n2025-03-12,SUPERMARKET à Paris,45.20\n"
BODY = {
    "prompt": "12/03 SUPERMARKET 45.20",
    "expenseCategories": [{"id": "c1", "name": "Groceries"}],
    "historicalExpenses": [{"description": "FairPrice", "categoryId": "c1", "amount": 12.5}],
}


def build_client(primary, fallback, audit_logger=None) -> TestClient:
    audit_logger = audit_logger or AuditLogger()
    app = create_app(
        agent=make_agent(primary, fallback, audit_logger),
        extractor=StatementExtractor(
            max_size_bytes=1024 * 1024,
            min_pdf_text_length=50,
            min_csv_text_length=10,
        ),
        audit_logger=audit_logger,
    )
    return TestClient(app)


@pytest.fixture
def primary():
    return FakeProvider("gemini", chunks=[OUTPUT[:20], OUTPUT[20:]])


@pytest.fixture
def fallback():
    return FakeProvider("openai", chunks=[OUTPUT])


@pytest.fixture
def client(primary, fallback, audit_logger):
    return build_client(primary, fallback, audit_logger)


@pytest.fixture
def failing_client():
    return build_client(
        FakeProvider("gemini", error=RuntimeError("quota")),
        FakeProvider("openai", error=RuntimeError("timeout")),
    )


class TestGeneral:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_method_not_allowed(self, client):
        response = client.get("/api/completion")
        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}

    def test_header_encoding(self):
        assert encode_header_text("a b/é!") == "a%20b%2F%C3%A9!"


class TestCompletion:

    def test_streams_primary_response(self, client, primary, fallback):
        response = client.post("/api/completion", json=BODY)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == OUTPUT
        assert "12/03 SUPERMARKET 45.20" in primary.prompts[0]
        assert "c1: Groceries" in primary.prompts[0]
        assert fallback.calls == 0

    def test_falls_back(self, fallback):
        client = build_client(FakeProvider("gemini", error=RuntimeError("quota")), fallback)
        response = client.post("/api/completion", json=BODY)

        assert response.status_code == 200
        assert response.text == OUTPUT

    def test_all_providers_fail(self, failing_client):
        response = failing_client.post("/api/completion", json=BODY)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == COMPLETION_ERROR
        assert body["message"] == "AI categorization failed with all providers"

    def test_missing_prompt(self, client):
        response = client.post("/api/completion", json={"expenseCategories": []})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_not_json(self, client):
        response = client.post(
            "/api/completion",
            content=b"{broken",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400


class TestCategorize:

    def test_returns_validated_rows(self, client, primary):
        response = client.post("/api/categorize", json=BODY)

        assert response.status_code == 200
        rows = response.json()
        assert rows[0] == {
            "amount": 45.2,
            "categoryId": "c1",
            "date": "2025-03-12",
            "description": "Supermarket",
        }
        assert isinstance(rows[0]["amount"], float)
        assert primary.calls == 0

    def test_all_providers_fail(self, failing_client):
        response = failing_client.post("/api/categorize", json=BODY)
        assert response.status_code == 500
        assert response.json()["error"] == COMPLETION_ERROR


class TestUploadStatement:

    def upload(self, client, data: bytes, filename="march.csv", content_type="text/csv", form=None):
        return client.post(
            "/api/upload-statement",
            files={"file": (filename, data, content_type)},
            data=form or {},
        )

    def test_no_file(self, client):
        response = client.post("/api/upload-statement", data={"expenseCategories": "[]"})
        assert response.status_code == 400
        assert response.json() == {"error": "No file provided"}

    def test_streams_with_extracted_text(self, client, primary, audit_storage):
        response = self.upload(
            client,
            CSV_TEXT.encode("utf-8"),
            form={"expenseCategories": '[{"id": "c1", "name": "Groceries"}]'},
        )

        assert response.status_code == 200
        assert response.text == OUTPUT
        assert unquote(response.headers["x-extracted-text"]) == CSV_TEXT
        assert "- c1: Groceries" in primary.prompts[0]
        assert "statement_uploaded" in audit_storage.types()
        assert "text_extracted" in audit_storage.types()

    def test_too_large(self, client):
        response = self.upload(client, b"x" * (1024 * 1024 + 1))
        assert response.status_code == 400
        assert response.json()["error"] == "File is too large. Maximum size is 1MB."

    def test_unsupported_type(self, client):
        response = self.upload(client, b"\x89PNG", filename="photo.png", content_type="image/png")
        assert response.status_code == 400
        assert response.json()["error"] == "Unsupported file type. Please upload a PDF or CSV file."

    def test_empty_csv(self, client, audit_storage):
        response = self.upload(client, b"   ")
        assert response.status_code == 422
        assert response.json()["error"] == "CSV file appears to be empty."
        assert "extraction_failed" in audit_storage.types()

    def test_invalid_categories_field(self, client):
        response = self.upload(client, CSV_TEXT.encode("utf-8"), form={"expenseCategories": "not json"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid expenseCategories")

    def test_all_providers_fail(self, failing_client):
        response = self.upload(failing_client, CSV_TEXT.encode("utf-8"))
        assert response.status_code == 500
        assert response.json()["error"] == STATEMENT_ERROR


class TestUnconfiguredFallback:
    """The app keeps working with only one provider key set."""

    @pytest.fixture
    def gemini_only_client(self, monkeypatch, tmp_path, primary):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.chdir(tmp_path)
        audit_logger = AuditLogger()
        agent = ExpenseCategorizationAgent(primary=primary, audit_logger=audit_logger, max_retries=0)
        return TestClient(create_app(agent=agent, audit_logger=audit_logger))

    def test_completion_streams_from_primary(self, gemini_only_client):
        response = gemini_only_client.post("/api/completion", json=BODY)
        assert response.status_code == 200
        assert response.text == OUTPUT

    def test_categorize_falls_back_to_primary(self, gemini_only_client, primary):
        response = gemini_only_client.post("/api/categorize", json=BODY)
        assert response.status_code == 200
        assert response.json()[0]["amount"] == 45.2
        assert primary.calls == 1

    def test_no_keys_gives_json_error(self, monkeypatch, tmp_path):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.chdir(tmp_path)
        client = TestClient(create_app())

        response = client.post("/api/completion", json=BODY)

        assert response.status_code == 500
        assert response.json()["error"] == COMPLETION_ERROR
