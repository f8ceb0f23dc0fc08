from __future__ import annotations

from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    """
    Base for every failure the API turns into a JSON envelope.

    `status_code` is what the HTTP caller sees; `error` is an optional detail
    (usually the provider's payload) echoed next to `message`.
    """

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None, error: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.error = error

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.error is not None:
            body["error"] = self.error
        return body


class AuthenticationError(ServiceError):
    # The end user cannot fix provider credentials, so this is a 500.
    status_code = 500


class ProviderError(ServiceError):
    def __init__(self, status: int = 500, data: Any = None, message: str = "Provider request failed"):
        super().__init__(message, status_code=status or 500, error=data)
        self.status = status or 500
        self.data = data

    def with_message(self, message: str, status_code: Optional[int] = None) -> "ProviderError":
        """Re-wrap for a caller-facing message, keeping the provider payload."""
        err = ProviderError(status=self.status, data=self.data, message=message)
        if status_code is not None:
            err.status_code = status_code
        return err


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class MismatchError(ServiceError):
    status_code = 400


class RouteNotFoundError(ServiceError):
    status_code = 404


class MethodNotAllowedError(ServiceError):
    status_code = 405

    def __init__(self, message: str, allowed_methods: List[str]):
        super().__init__(message)
        self.allowed_methods = list(allowed_methods)

    def to_body(self) -> Dict[str, Any]:
        return {"message": self.message, "allowedMethods": self.allowed_methods}
