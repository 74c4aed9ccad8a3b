"""Unit tests for error handling middleware and PII filtering."""

import json
import logging
from unittest.mock import Mock

import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from cardtruth.api.middleware.error_handler import (
    handle_generic_error,
    handle_statement_processing_error,
    handle_validation_error,
)
from cardtruth.api.middleware.logging import RequestLoggingMiddleware
from cardtruth.core.errors import get_error, is_retryable
from cardtruth.core.exceptions import (
    CardNotFoundError,
    ExtractionError,
    LayerStorageError,
    StatementProcessingError,
)
from cardtruth.core.logging import PiiFilter, filter_pii


def make_request(path: str = "/api/v1/cards/42/truth", method: str = "GET") -> Mock:
    request = Mock(spec=Request)
    request.url.path = path
    request.method = method
    return request


class TestStatementProcessingErrorHandler:
    """Test custom exception handling."""

    @pytest.mark.asyncio
    async def test_catalog_fields(self):
        """Test the response carries the catalog entry for the code."""
        exc = ExtractionError("EXT_004", details={"filename": "statement.pdf"}, http_status=401)

        response = await handle_statement_processing_error(make_request("/api/v1/cards/42/statements", "POST"), exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 401
        content = json.loads(response.body)
        assert content == {
            "error_code": "EXT_004",
            "message": "PDF is password-protected",
            "user_message": "This statement requires a password.",
            "suggestion": "Please provide the PDF password and try again.",
            "retry_allowed": True,
        }

    @pytest.mark.asyncio
    async def test_details_not_exposed(self):
        exc = CardNotFoundError(details={"card_id": "42"})

        response = await handle_statement_processing_error(make_request(), exc)

        assert response.status_code == 404
        content = json.loads(response.body)
        assert content["error_code"] == "CARD_001"
        assert content["retry_allowed"] is False
        assert "card_id" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_client_errors_logged_as_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="cardtruth.api.middleware.error_handler"):
            await handle_statement_processing_error(make_request(), CardNotFoundError())

        assert caplog.records[-1].levelno == logging.WARNING
        assert caplog.records[-1].error_code == "CARD_001"

    @pytest.mark.asyncio
    async def test_server_errors_logged_as_error(self, caplog):
        with caplog.at_level(logging.WARNING, logger="cardtruth.api.middleware.error_handler"):
            await handle_statement_processing_error(make_request(), LayerStorageError())

        assert caplog.records[-1].levelno == logging.ERROR
        assert "STORE_001" in caplog.records[-1].getMessage()

    @pytest.mark.asyncio
    async def test_unknown_code(self):
        response = await handle_statement_processing_error(
            make_request(), StatementProcessingError("NOPE_999", http_status=500)
        )

        content = json.loads(response.body)
        assert content["error_code"] == "NOPE_999"
        assert content["message"] == "Unknown error code: NOPE_999"


class TestErrorCatalog:
    """Test catalog lookups."""

    def test_known_code(self):
        assert get_error("FMT_001")["code"] == "FMT_001"
        assert is_retryable("CARD_001") is False

    def test_unknown_code_is_generic(self):
        assert get_error("XYZ")["code"] == "UNKNOWN"
        assert is_retryable("XYZ") is True


class TestValidationErrorHandler:
    """Test validation error handling."""

    @pytest.mark.asyncio
    async def test_handle_validation_error(self):
        exc = RequestValidationError(
            [
                {"loc": ("body", "text"), "msg": "Field required", "type": "missing"},
                {"loc": ("query", "month"), "msg": "Input should be a valid date", "type": "date_parsing"},
            ]
        )

        response = await handle_validation_error(make_request("/api/v1/cards/42/summary", "POST"), exc)

        assert response.status_code == 400
        content = json.loads(response.body)
        assert content["error_code"] == "API_003"
        assert content["message"] == "body.text: Field required | query.month: Input should be a valid date"
        assert content["user_message"] == "Invalid input data"
        assert content["retry_allowed"] is True


class TestGenericErrorHandler:
    """Test the catch-all handler."""

    @pytest.mark.asyncio
    async def test_handle_generic_error(self):
        response = await handle_generic_error(make_request(), RuntimeError("card 4111 1111 1111 1111"))

        assert response.status_code == 500
        content = json.loads(response.body)
        assert content["error_code"] == "SYS_001"
        assert content["message"] == "Internal server error"
        assert content["user_message"] == "An unexpected error occurred"
        assert content["retry_allowed"] is True
        assert "4111" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_exception_text_not_logged(self, caplog):
        with caplog.at_level(logging.ERROR, logger="cardtruth.api.middleware.error_handler"):
            await handle_generic_error(make_request(), RuntimeError("Statement for Jane Doe"))

        assert "Jane Doe" not in caplog.text
        assert caplog.records[-1].error_type == "RuntimeError"


class TestPiiFiltering:
    """Test PII scrubbing of log text."""

    def test_card_numbers(self):
        assert filter_pii("Card 4111 1111 1111 1111 declined") == "Card [CARD] declined"
        assert filter_pii("Card 4111-1111-1111-1111") == "Card [CARD]"

    def test_email(self):
        assert filter_pii("Sent to jane.doe@example.com") == "Sent to [EMAIL]"

    def test_phone(self):
        assert "[PHONE]" in filter_pii("Call +1 (555) 123-4567 now")

    def test_cardholder_name(self):
        assert filter_pii("Cardholder: Jane Doe") == "Card[NAME]"
        assert "Maria Lopez" not in filter_pii("Titular: Maria Lopez")

    def test_empty_values_pass_through(self):
        assert filter_pii("") == ""
        assert filter_pii(None) is None

    def test_amounts_untouched(self):
        assert filter_pii("New Balance $2,074.43") == "New Balance $2,074.43"


class TestPiiFilter:
    """Test the logging filter."""

    def test_message_and_args_scrubbed(self):
        record = logging.LogRecord(
            "cardtruth", logging.INFO, __file__, 1, "Parsed %s for %s", ("4111 1111 1111 1111", 42), None
        )

        assert PiiFilter().filter(record) is True
        assert record.getMessage() == "Parsed [CARD] for 42"

    def test_mapping_args(self):
        record = logging.LogRecord(
            "cardtruth", logging.INFO, __file__, 1, "Mail %(to)s", ({"to": "a@b.io"},), None
        )

        PiiFilter().filter(record)
        assert record.getMessage() == "Mail [EMAIL]"


class TestRequestLoggingMiddleware:
    """Test request IDs and request logging."""

    @pytest.fixture
    def app(self):
        app = FastAPI()
        app.add_middleware(RequestLoggingMiddleware)

        @app.get("/ping")
        async def ping():
            return {"pong": True}

        return app

    @pytest.mark.asyncio
    async def test_request_id_generated(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/ping")

        assert response.status_code == 200
        assert len(response.headers["X-Request-ID"]) == 36

    @pytest.mark.asyncio
    async def test_request_id_reused(self, app, caplog):
        with caplog.at_level(logging.INFO, logger="cardtruth.api.middleware.logging"):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                response = await ac.get("/ping", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        completed = [record for record in caplog.records if record.getMessage() == "Request completed"]
        assert completed[-1].request_id == "req-123"
        assert completed[-1].status_code == 200
