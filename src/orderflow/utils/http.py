"""HTTP client settings shared by the live provider adapters."""

import os

import httpx

DEFAULT_PROVIDER_TIMEOUT_SECONDS = 10.0


def provider_timeout() -> float:
    """Timeout in seconds for every call to a payment or shipping provider."""
    return float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", DEFAULT_PROVIDER_TIMEOUT_SECONDS))


def build_client(base_url: str, timeout: float | None = None, **kwargs) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        timeout=httpx.Timeout(timeout if timeout is not None else provider_timeout()),
        **kwargs,
    )


def error_message(response: httpx.Response) -> str:
    """Best-effort extraction of a provider's error message."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("description"):
            return error["description"]
        if body.get("message"):
            return str(body["message"])
    return f"HTTP {response.status_code}"
