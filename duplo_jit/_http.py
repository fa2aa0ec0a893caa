"""Shared HTTP request utilities for the broker client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .exceptions import BrokerAuthenticationError, UpstreamUnavailable

logger = logging.getLogger(__name__)


def build_headers(token: str, otp: str | None = None) -> dict[str, str]:
    """Build request headers with bearer authentication."""
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json; charset=utf-8",
    }
    if otp:
        headers["otpcode"] = otp
    return headers


def _request_url(response: httpx.Response) -> httpx.URL | None:
    try:
        return response.request.url
    except RuntimeError:
        return None


def _error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    message = response.text or "(empty response body)"
    request_url = _request_url(response)
    path = request_url.path if request_url is not None else ""

    # Older APIs do not return helpful errors to API clients.
    if not path.startswith("/v3/") and response.status_code in (400, 404):
        message = f"{message}. Please verify your Duplo connection information."

    parsed: dict[str, Any] = {}
    mime = response.headers.get("content-type", "").split(";", 1)[0].strip()
    if mime == "application/json":
        try:
            body = response.json()
            if isinstance(body, dict):
                parsed = body
        except ValueError:
            logger.error("failed to parse error response JSON: %s", response.text)
    return message, parsed


def handle_response(response: httpx.Response) -> Any:
    """Process HTTP response, raising appropriate errors for failures."""
    request_url = _request_url(response)
    url = str(request_url) if request_url is not None else None

    if response.status_code >= 300:
        message, parsed = _error_message(response)
        message = f"url: {url}, status: {response.status_code}, message: {message}"
        logger.warning("broker call failed: %s", message)
        parsed.setdefault("Message", message)

        error_cls = BrokerAuthenticationError if response.status_code == 401 else UpstreamUnavailable
        raise error_cls(message, status_code=response.status_code, url=url, response=parsed)

    if not response.content or response.text == "null":
        return None
    try:
        return response.json()
    except ValueError as e:
        raise UpstreamUnavailable(f"cannot unmarshal response from JSON: {e}", url=url) from e
