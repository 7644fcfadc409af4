"""Shared HTTP helpers for forge backends."""

from __future__ import annotations

import os
from typing import Any

import httpx

from flakebot.forges import MissingTokenError, ReadOnlyRepositoryError, SubmissionError

# Longest response excerpt carried into an error message.
_ERROR_BODY_LIMIT = 500


def read_token(env_var: str) -> str:
    token = os.environ.get(env_var)
    if not token:
        raise MissingTokenError(env_var)
    return token


def normalize_base_url(base_url: str) -> str:
    """Accept ``host`` or ``https://host/`` and return ``https://host``."""
    if "://" not in base_url:
        base_url = f"https://{base_url}"
    return base_url.rstrip("/")


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: dict[str, str],
    params: dict[str, Any] | None = None,
    json: dict[str, Any] | None = None,
) -> Any:
    """Send one API request and return the decoded JSON response.

    Raises
    ------
    ReadOnlyRepositoryError
        On HTTP 403.
    SubmissionError
        On transport failure or any other error status.
    """
    try:
        response = await client.request(method, url, headers=headers, params=params, json=json)
    except httpx.HTTPError as exc:
        raise SubmissionError(f"{method} {url} failed: {exc}") from exc

    if response.status_code == 403:
        raise ReadOnlyRepositoryError(
            f"{method} {url} was refused (403); the token has no write access"
        )
    if response.is_error:
        raise SubmissionError(
            f"{method} {url} returned {response.status_code}: "
            f"{response.text[:_ERROR_BODY_LIMIT]}"
        )
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise SubmissionError(f"{method} {url} returned invalid JSON: {exc}") from exc
