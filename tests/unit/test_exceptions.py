"""Unit tests for custom exception hierarchy"""
import httpx
import psycopg
import pytest
from datetime import datetime
from chemlab.exceptions import (
    ChemLabError,
    ValidationError,
    NotFoundError,
    PurchaseError,
    PersistenceError,
    ConnectionError,
    QueryError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    NotificationError,
    wrap_external_exception
)


class TestChemLabError:
    """Test base exception class"""

    def test_basic_exception(self):
        error = ChemLabError("Test error")
        assert error.message == "Test error"
        assert error.user_message == "Đã xảy ra lỗi. Vui lòng thử lại."
        assert error.request_id is not None
        assert error.committed is False
        assert isinstance(error.timestamp, datetime)

    def test_exception_with_context(self):
        error = ChemLabError(
            message="Failed to save quiz attempt",
            user_id="learner-1",
            operation="submit_quiz",
            context={"quiz_id": "abc-123"},
            user_message="Không thể lưu bài làm"
        )
        assert error.user_id == "learner-1"
        assert error.operation == "submit_quiz"
        assert error.context["quiz_id"] == "abc-123"
        assert error.user_message == "Không thể lưu bài làm"

    def test_to_dict(self):
        error = ChemLabError("Test error", committed=True)
        data = error.to_dict()
        assert data["error"] == "ChemLabError"
        assert data["message"] == "Test error"
        assert data["committed"] is True
        assert "request_id" in data
        assert "timestamp" in data


class TestSubclasses:
    """Status codes and context of specific errors"""

    def test_validation_error(self):
        error = ValidationError("Stars must be between 1 and 3", field="stars", value=5)
        assert error.status_code == 400
        assert error.field == "stars"
        assert error.context == {"field": "stars", "value": 5}
        assert "stars" in error.user_message

    def test_not_found_error(self):
        error = NotFoundError("Quiz q-1 not found", record_type="quiz", record_id="q-1")
        assert error.status_code == 404
        assert error.record_id == "q-1"

    def test_purchase_error(self):
        error = PurchaseError("Already owned", item_id="s-1", user_id="learner-1")
        assert error.status_code == 409
        assert error.reason == "Already owned"
        assert error.user_message == "Bạn đã sở hữu vật phẩm này"
        assert error.context == {"reason": "Already owned", "item_id": "s-1"}

    def test_auth_errors(self):
        assert AuthenticationError().status_code == 401
        error = AuthorizationError(resource="grade_essay")
        assert error.status_code == 403
        assert error.context["resource"] == "grade_essay"

    def test_persistence_errors(self):
        assert issubclass(ConnectionError, PersistenceError)
        assert issubclass(QueryError, PersistenceError)
        assert ConnectionError().status_code == 503
        error = QueryError("bad query", query="SELECT 1")
        assert error.status_code == 500
        assert error.context["query"] == "SELECT 1"
        assert error.user_message == "Không thể lưu dữ liệu. Vui lòng thử lại."

    def test_configuration_error(self):
        error = ConfigurationError("JWT_SECRET is required", config_key="JWT_SECRET")
        assert error.config_key == "JWT_SECRET"
        assert error.status_code == 500

    def test_notification_error(self):
        error = NotificationError("Resend failed", status_code=429)
        assert error.status_code == 502
        assert error.upstream_status == 429


class TestWrapExternalException:
    """Mapping of library exceptions into the hierarchy"""

    def test_passthrough(self):
        original = ValidationError("x")
        assert wrap_external_exception(original, operation="op") is original

    def test_operational_error(self):
        error = wrap_external_exception(psycopg.OperationalError("down"), operation="award_xp", user_id="u1")
        assert isinstance(error, ConnectionError)
        assert error.user_id == "u1"
        assert error.committed is False

    def test_query_error(self):
        error = wrap_external_exception(psycopg.errors.UniqueViolation("dup"), operation="award_xp")
        assert isinstance(error, QueryError)

    def test_http_status_error(self):
        request = httpx.Request("POST", "https://api.resend.com/emails")
        original = httpx.HTTPStatusError("err", request=request, response=httpx.Response(401, request=request))
        error = wrap_external_exception(original, operation="notify_pending_grade", committed=True)
        assert isinstance(error, NotificationError)
        assert error.upstream_status == 401
        assert error.committed is True

    def test_http_transport_error(self):
        error = wrap_external_exception(httpx.ConnectTimeout("timeout"), operation="notify_pending_grade")
        assert isinstance(error, NotificationError)

    def test_generic_fallback(self):
        error = wrap_external_exception(KeyError("x"), operation="grade_essay")
        assert type(error) is ChemLabError
        assert "grade_essay failed" in error.message
