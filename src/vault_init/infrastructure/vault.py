from typing import Optional

import httpx
from pydantic import ValidationError

from vault_init.core.models import InitRequest, InitResult
from vault_init.utils.errors import InitializationError

HEALTH_PATH = "/v1/sys/health"
INIT_PATH = "/v1/sys/init"

# Longest slice of an error response body echoed back to the operator.
_BODY_EXCERPT_LIMIT = 200


def build_http_client(timeout: float, transport: Optional[httpx.BaseTransport] = None) -> httpx.Client:
    """
    Create the HTTP client shared by the health probe and the init request.

    Redirects are not followed: Vault answers the sys endpoints directly.
    """
    return httpx.Client(timeout=timeout, follow_redirects=False, transport=transport)


def health_url(address: str) -> str:
    return f"{address.rstrip('/')}{HEALTH_PATH}"


def init_url(address: str) -> str:
    return f"{address.rstrip('/')}{INIT_PATH}"


def initialize_vault(client: httpx.Client, address: str, request: InitRequest) -> InitResult:
    """
    Send the one-shot init request and parse the response.

    Every failure is raised as InitializationError; nothing here retries.
    """
    try:
        response = client.put(init_url(address), json=request.model_dump())
    except httpx.HTTPError as exc:
        raise InitializationError(f"init request to {address} failed: {exc}") from exc

    if response.status_code != 200:
        excerpt = response.text[:_BODY_EXCERPT_LIMIT].strip()
        detail = f": {excerpt}" if excerpt else ""
        raise InitializationError(f"init: non 200 status code: {response.status_code}{detail}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise InitializationError(f"init response is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise InitializationError("init response must be a JSON object")

    try:
        return InitResult.model_validate(payload)
    except ValidationError as exc:
        raise InitializationError(f"init response rejected: {exc.error_count()} invalid field(s): {_field_names(exc)}") from exc


def _field_names(exc: ValidationError) -> str:
    names = sorted({".".join(str(part) for part in error["loc"]) or "<root>" for error in exc.errors()})
    return ", ".join(names)
