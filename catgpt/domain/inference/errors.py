from enum import Enum
from typing import Optional


class InferenceErrorKind(str, Enum):
    """Failure classes of an inference call"""
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    ENDPOINT = "endpoint"
    INVALID_RESPONSE = "invalid_response"


class InferenceError(Exception):
    """Base class for failures raised by the inference client"""

    kind: InferenceErrorKind = InferenceErrorKind.ENDPOINT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InferenceTimeoutError(InferenceError):
    """The model did not answer within the hard timeout"""

    kind = InferenceErrorKind.TIMEOUT

    def __init__(self, timeout: float):
        super().__init__(f"Inference timed out after {timeout:g}s")
        self.timeout = timeout


class InferenceUnavailableError(InferenceError):
    """The endpoint refused or could not accept the connection"""

    kind = InferenceErrorKind.UNAVAILABLE


class EndpointError(InferenceError):
    """The endpoint answered with a non-success status"""

    kind = InferenceErrorKind.ENDPOINT

    def __init__(self, status_code: int, detail: Optional[str] = None):
        super().__init__(f"Ollama error: {status_code}")
        self.status_code = status_code
        self.detail = detail


class InvalidResponseError(InferenceError):
    """The endpoint answered 2xx with a body lacking message.content"""

    kind = InferenceErrorKind.INVALID_RESPONSE
