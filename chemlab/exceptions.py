"""
Standardized exception hierarchy for chemlab
Provides rich context, consistent logging, and user-friendly error messages

Every error carries a ``committed`` flag. It is False when the failed
operation left no visible state behind (the transaction rolled back) and True
when the effects were committed but a later step (e.g. reporting or
notification) failed.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class ChemLabError(Exception):
    """
    Base exception for all chemlab errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise ChemLabError(
            message="Failed to save quiz attempt",
            user_id="5b0c...",
            operation="submit_quiz",
            context={"quiz_id": "abc-123"}
        )
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None,
        committed: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "Đã xảy ra lỗi. Vui lòng thử lại."
        self.committed = committed
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "committed": self.committed,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        elif self.status_code >= 500:
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data)
        else:
            logger.warning(f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "committed": self.committed,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(ChemLabError):
    """
    Raised when input fails validation

    Examples:
    - Quiz without questions
    - Answer array referencing unknown questions
    - Essay score above its maximum
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Dữ liệu không hợp lệ ({field}): {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


class PurchaseError(ChemLabError):
    """
    Shop purchase or equip refused

    ``reason`` is one of the shop refusal reasons (item not available,
    already owned, insufficient XP, item not owned).
    """

    status_code = 409

    USER_MESSAGES = {
        "Item not available": "Vật phẩm không khả dụng",
        "Already owned": "Bạn đã sở hữu vật phẩm này",
        "Insufficient XP": "Không đủ XP để mua",
        "Item not owned": "Bạn chưa sở hữu vật phẩm này",
    }

    def __init__(
        self,
        reason: str,
        item_id: Optional[str] = None,
        **kwargs
    ):
        self.reason = reason
        self.item_id = item_id
        super().__init__(
            message=reason,
            user_message=self.USER_MESSAGES.get(reason, reason),
            context={"reason": reason, "item_id": item_id},
            **kwargs
        )


class NotFoundError(ChemLabError):
    """Requested quiz, attempt, learner or achievement does not exist"""

    status_code = 404

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"Không tìm thấy {record_type or 'dữ liệu'}.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Persistence Errors
# ==========================================

class PersistenceError(ChemLabError):
    """
    Base class for store write/read failures
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "Không thể lưu dữ liệu. Vui lòng thử lại.")
        super().__init__(message=message, **kwargs)


class ConnectionError(PersistenceError):
    """Database connection failed"""

    status_code = 503

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="Không thể kết nối cơ sở dữ liệu. Vui lòng thử lại sau.",
            **kwargs
        )


class QueryError(PersistenceError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        context = kwargs.pop("context", None) or {}
        context["query"] = query
        super().__init__(message=message, context=context, **kwargs)


# ==========================================
# Authentication & Authorization
# ==========================================

class AuthenticationError(ChemLabError):
    """Learner identity could not be established"""

    status_code = 401

    def __init__(
        self,
        message: str = "Authentication failed",
        **kwargs
    ):
        super().__init__(
            message=message,
            user_message="Bạn cần đăng nhập để tiếp tục.",
            **kwargs
        )


class AuthorizationError(ChemLabError):
    """Caller lacks permission for requested operation"""

    status_code = 403

    def __init__(
        self,
        message: str = "Insufficient permissions",
        resource: Optional[str] = None,
        **kwargs
    ):
        self.resource = resource
        super().__init__(
            message=message,
            user_message="Bạn không có quyền thực hiện thao tác này.",
            context={"resource": resource},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(ChemLabError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="Hệ thống chưa được cấu hình đúng. Vui lòng liên hệ quản trị viên.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# External Service Errors
# ==========================================

class NotificationError(ChemLabError):
    """Sending an admin notification failed"""

    status_code = 502

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **kwargs
    ):
        self.upstream_status = status_code
        super().__init__(
            message=message,
            user_message="Không thể gửi thông báo.",
            context={"service": "resend", "status_code": status_code},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    committed: bool = False
) -> ChemLabError:
    """
    Wrap external exceptions (psycopg, httpx) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: Learner ID if applicable
        context: Additional context
        committed: Whether the operation's effects were already committed

    Returns:
        Appropriate ChemLabError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="award_xp", user_id=user_id)
    """
    # Import here to avoid circular dependencies
    import psycopg
    import httpx

    if isinstance(error, ChemLabError):
        return error

    # Database errors
    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error,
            committed=committed
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error,
            committed=committed
        )

    # HTTP errors
    elif isinstance(error, httpx.HTTPStatusError):
        return NotificationError(
            message=f"Notification API returned error: {error.response.status_code}",
            status_code=error.response.status_code,
            user_id=user_id,
            operation=operation,
            cause=error,
            committed=committed
        )
    elif isinstance(error, httpx.HTTPError):
        return NotificationError(
            message=f"Notification request failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error,
            committed=committed
        )

    # Generic fallback
    else:
        return ChemLabError(
            message=f"{operation} failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error,
            committed=committed
        )
