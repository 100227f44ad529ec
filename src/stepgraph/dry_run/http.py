"""
HTTP Client - timeout-bounded requests for the http_request step.

Every call carries an explicit timeout; a test run never blocks on a
slow server. Transport failures are translated into the NetworkError
family so the caller can show the right message.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout

from .errors import HttpConnectivityError, HttpStatusError, HttpTimeoutError, NetworkError


logger = logging.getLogger(__name__)

# Default timeout in milliseconds
DEFAULT_TIMEOUT_MS = 5000

# Cap on the response body kept in an HttpStatusError
ERROR_BODY_LIMIT = 1000


class HttpResponse:
    """
    Wrapper for HTTP response with convenient accessors.
    """

    def __init__(self, response: requests.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> Dict[str, str]:
        """Response headers with lower-cased names."""
        return {k.lower(): v for k, v in self._response.headers.items()}

    @property
    def text(self) -> str:
        return self._response.text

    @property
    def ok(self) -> bool:
        """True if status code is below 400."""
        return self._response.ok

    def body(self) -> Any:
        """Parsed JSON when the content type says so, otherwise the text."""
        content_type = self._response.headers.get("content-type", "")
        if "application/json" in content_type or content_type.endswith("+json"):
            try:
                return self._response.json()
            except ValueError:
                logger.debug("Response declared JSON but did not parse; returning text")
        return self._response.text

    def raise_for_status(self, node_id: Optional[str] = None) -> None:
        """Raise HttpStatusError if status code indicates error."""
        if not self.ok:
            raise HttpStatusError(
                status_code=self.status_code,
                reason=self._response.reason or "",
                node_id=node_id,
                url=str(self._response.url),
                response_body=self.text[:ERROR_BODY_LIMIT] if self.text else None,
            )


class HttpClient:
    """
    HTTP client with timeout enforcement.

    Usage:
        client = HttpClient(timeout_ms=5000)
        response = client.request("GET", "https://api.example.com/users")
        data = response.body()
    """

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS, max_timeout_ms: Optional[int] = None):
        """
        Args:
            timeout_ms: Timeout used when a request does not give one
            max_timeout_ms: Upper bound applied to every request timeout
        """
        self.timeout_ms = timeout_ms
        self.max_timeout_ms = max_timeout_ms

    def effective_timeout_ms(self, timeout_ms: Optional[int] = None) -> int:
        value = timeout_ms or self.timeout_ms
        if self.max_timeout_ms is not None:
            value = min(value, self.max_timeout_ms)
        return value

    def request(
        self,
        method: str,
        url: str,
        params: Optional[List[Tuple[str, str]]] = None,
        data: Optional[Union[str, bytes]] = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[Tuple[str, str]] = None,
        timeout_ms: Optional[int] = None,
        node_id: Optional[str] = None,
    ) -> HttpResponse:
        """
        Make HTTP request with timeout enforcement.

        Raises:
            HttpTimeoutError: If the request times out
            HttpConnectivityError: If the server cannot be reached
            NetworkError: Any other transport failure
        """
        request_timeout_ms = self.effective_timeout_ms(timeout_ms)
        logger.debug("%s %s (timeout %dms)", method, url, request_timeout_ms)

        try:
            response = requests.request(
                method=method,
                url=url,
                params=params or None,
                data=data,
                headers=headers or {},
                auth=auth,
                timeout=request_timeout_ms / 1000,
            )
            return HttpResponse(response)

        except Timeout as e:
            raise HttpTimeoutError(request_timeout_ms, node_id=node_id, url=url) from e

        except RequestsConnectionError as e:
            raise HttpConnectivityError(f"connection failed ({type(e).__name__})", node_id=node_id, url=url) from e

        except RequestException as e:
            raise NetworkError(f"Request failed: {e}", node_id=node_id, url=url) from e


__all__ = ["HttpClient", "HttpResponse", "DEFAULT_TIMEOUT_MS"]
