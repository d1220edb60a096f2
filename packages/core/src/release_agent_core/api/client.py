"""JSON-over-HTTP plumbing shared by every backend call.

request_json() is the only place that talks to httpx. It builds the URL,
attaches JSON headers and body, and turns every non-2xx response into a
single ApiError so callers only ever catch one thing for backend failures.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Distinguishes "no body" from an explicit JSON null body.
UNSET: Any = object()


class ApiError(Exception):
    """A non-2xx backend response, normalized to {status, message, details}."""

    def __init__(self, status: int, message: str, details: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"ApiError(status={self.status}, message={self.message!r})"


def error_message(exc: BaseException, fallback: str) -> str:
    """Return a user-visible message for exc, or fallback when it has none."""
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    text = str(exc)
    return text or fallback


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def _encode_params(params: dict[str, Any] | None) -> dict[str, str] | None:
    if not params:
        return None
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


def _safe_read_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


async def request_json(
    client: httpx.AsyncClient,
    base_url: str,
    path: str,
    *,
    method: str = "GET",
    body: Any = UNSET,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
) -> Any:
    """Send one request and return the decoded JSON body (None for 204).

    Raises ApiError for any non-2xx status. Transport failures propagate as
    httpx.HTTPError.
    """
    url = join_url(base_url, path)
    request_headers = {"accept": "application/json"}
    content = None
    if body is not UNSET:
        request_headers["content-type"] = "application/json"
        content = json.dumps(body)
    if headers:
        request_headers.update(headers)

    response = await client.request(
        method,
        url,
        headers=request_headers,
        content=content,
        params=_encode_params(params),
    )

    if not response.is_success:
        payload = _safe_read_json(response)
        message = None
        if isinstance(payload, dict) and isinstance(payload.get("message"), str):
            message = payload["message"]
        if message is None:
            message = f"{response.status_code} {response.reason_phrase}".strip()
        logger.debug("%s %s -> %s: %s", method, url, response.status_code, message)
        raise ApiError(response.status_code, message, payload)

    if response.status_code == 204:
        return None

    return response.json()
