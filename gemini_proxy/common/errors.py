"""
Error Definitions

Defines custom exception classes used in the application for unified error handling.
"""

from typing import Any, Optional


class AppError(Exception):
    """
    Application Base Exception

    Base class for all custom exceptions, containing error message, type, and code.
    """

    def __init__(
        self,
        message: str,
        error_type: str = "app_error",
        code: str = "internal_error",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ):
        """
        Initialize exception

        Args:
            message: Error message
            error_type: Error type
            code: Error code
            details: Extra error details
            status_code: HTTP status code
        """
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self, include_details: bool = True) -> dict[str, Any]:
        """
        Convert to dictionary format (for API response)

        Args:
            include_details: Whether to include the extra details block

        Returns:
            dict: Error information dictionary
        """
        result = {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.code,
            }
        }
        if include_details and self.details:
            result["error"]["details"] = self.details
        return result


class ValidationError(AppError):
    """
    Parameter Validation Error

    Raised when the caller's request is malformed or asks for something unsupported.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        code: str = "validation_error",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_type="invalid_request_error",
            code=code,
            details=details,
            status_code=400,
        )


class UnsupportedContentTypeError(ValidationError):
    """Raised for a message content part whose type cannot be mapped."""

    def __init__(self, part_type: Any):
        super().__init__(
            message=f'Unknown "content" item type: "{part_type}"',
            code="unsupported_content_type",
            details={"type": part_type},
        )


class InvalidDataUriError(ValidationError):
    """Raised when an inline media reference is not a valid data URI."""

    def __init__(self, uri: str):
        super().__init__(
            message=f"Invalid image data: {uri}",
            code="invalid_data_uri",
        )


class NotFoundError(AppError):
    """
    Resource Not Found Error

    Raised when the requested route does not exist.
    """

    def __init__(
        self,
        message: str = "404 Not Found",
        code: str = "not_found",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_type="not_found_error",
            code=code,
            details=details,
            status_code=404,
        )


class FetchError(AppError):
    """
    Media Fetch Error

    Raised when a remote image referenced by the request cannot be downloaded.
    The whole request fails; partial multimodal input is never forwarded.
    """

    def __init__(
        self,
        message: str,
        code: str = "media_fetch_error",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"Error fetching image: {message}",
            error_type="upstream_error",
            code=code,
            details=details,
            status_code=502,
        )


class UpstreamError(AppError):
    """
    Upstream Service Error

    Raised when the upstream API cannot be reached at all.
    """

    def __init__(
        self,
        message: str = "Upstream service error",
        code: str = "upstream_error",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ):
        super().__init__(
            message=message,
            error_type="upstream_error",
            code=code,
            details=details,
            status_code=status_code,
        )


class UpstreamHttpError(UpstreamError):
    """
    Upstream HTTP Error

    Raised when the upstream answers with a non-2xx status. The HTTP layer
    relays the status code and the raw body unchanged instead of rendering
    the usual error envelope.
    """

    def __init__(
        self,
        status_code: int,
        body: bytes = b"",
        content_type: Optional[str] = None,
    ):
        super().__init__(
            message=f"Upstream returned HTTP {status_code}",
            code="upstream_http_error",
            status_code=status_code,
        )
        self.body = body
        self.content_type = content_type


class StreamDecodeError(AppError):
    """
    Stream Decode Error

    Describes an upstream SSE frame whose payload is not valid JSON. It is
    never raised to the HTTP layer; the stream emitter turns it into an
    error-content chunk.
    """

    def __init__(self, frame: str, reason: str):
        super().__init__(
            message=reason,
            error_type="stream_decode_error",
            code="stream_decode_error",
            details={"frame": frame},
            status_code=502,
        )
        self.frame = frame
