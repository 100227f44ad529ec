"""
Dry-run error taxonomy.

Every failure a test run can report derives from DryRunError and carries
a `kind` for programmatic handling plus a `user_message` suitable for the
node's output panel.
"""

from __future__ import annotations

from typing import Optional


class DryRunError(Exception):
    """Base class for failures surfaced by a test run."""

    kind = "execution"

    def __init__(self, message: str, node_id: Optional[str] = None) -> None:
        self.message = message
        self.node_id = node_id
        super().__init__(message)

    @property
    def user_message(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.user_message,
            "nodeId": self.node_id,
        }


class NodeExecutionError(DryRunError):
    """An executor could not produce an output."""


class CodeExecutionError(DryRunError):
    """User code raised."""

    kind = "code"

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        error_type: Optional[str] = None,
        stdout: str = "",
    ) -> None:
        self.error_type = error_type
        self.stdout = stdout
        super().__init__(message, node_id)

    @property
    def user_message(self) -> str:
        if self.error_type:
            return f"Code error: {self.error_type}: {self.message}"
        return f"Code error: {self.message}"


class CodeTimeoutError(CodeExecutionError):
    """User code ran past the wall-clock limit."""

    kind = "code-timeout"

    def __init__(self, timeout_s: float, node_id: Optional[str] = None) -> None:
        self.timeout_s = timeout_s
        super().__init__(f"Code did not finish within {timeout_s:g}s", node_id)

    @property
    def user_message(self) -> str:
        return self.message


class CodeResourceError(CodeExecutionError):
    """User code hit the memory limit or was killed."""

    kind = "code-resource"

    @property
    def user_message(self) -> str:
        return self.message


class NetworkError(DryRunError):
    """Base class for http_request failures."""

    kind = "generic-http-error"

    def __init__(self, message: str, node_id: Optional[str] = None, url: Optional[str] = None) -> None:
        self.url = url
        super().__init__(message, node_id)


class HttpTimeoutError(NetworkError):
    """The request did not complete within the step's timeout."""

    kind = "timeout"

    def __init__(self, timeout_ms: int, node_id: Optional[str] = None, url: Optional[str] = None) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timed out after {timeout_ms}ms", node_id, url)


class HttpConnectivityError(NetworkError):
    """The server could not be reached (DNS, refused connection, TLS, proxy)."""

    kind = "connectivity"

    @property
    def user_message(self) -> str:
        return (
            f"Could not reach \"{self.url}\": {self.message}. "
            "Check the URL, or try a public API "
            "(e.g. https://jsonplaceholder.typicode.com/todos/1) to test the node."
        )


class HttpStatusError(NetworkError):
    """The server answered with a status code of 400 or above."""

    kind = "http-status"

    def __init__(
        self,
        status_code: int,
        reason: str = "",
        node_id: Optional[str] = None,
        url: Optional[str] = None,
        response_body: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        message = f"HTTP {status_code}: {reason}" if reason else f"HTTP {status_code}"
        super().__init__(message, node_id, url)


class UpstreamStepError(DryRunError):
    """A step this one depends on failed, so this one was not run."""

    kind = "upstream"

    def __init__(self, cause: DryRunError, node_id: Optional[str] = None) -> None:
        self.cause = cause
        super().__init__(
            f"Upstream step '{cause.node_id}' failed: {cause.user_message}",
            node_id,
        )


__all__ = [
    "DryRunError",
    "NodeExecutionError",
    "CodeExecutionError",
    "CodeTimeoutError",
    "CodeResourceError",
    "NetworkError",
    "HttpTimeoutError",
    "HttpConnectivityError",
    "HttpStatusError",
    "UpstreamStepError",
]
