from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from .errors import HkaError
from .models import HkaCredentials, HkaEnv
from .transport import AuthResult

logger = logging.getLogger(__name__)


def _error_body(resp: httpx.Response) -> Dict[str, Any]:
    text = resp.text
    try:
        body = json.loads(text)
    except ValueError:
        return {"message": text or "Failed to parse error response."}
    if isinstance(body, dict):
        return body
    return {"message": str(body)}


class RestTransport:
    """HKA REST API over httpx.

    5xx answers and network errors are retried `max_retries` times with
    exponential backoff (1s, 2s, ...). Any other non-2xx becomes an HkaError
    carrying the HTTP status and the parsed body.
    """

    name = "rest"
    required_fields: Tuple[str, ...] = ("api_key",)

    def __init__(
        self,
        base_urls: Dict[HkaEnv, str],
        *,
        timeout: float = 30.0,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        client: Optional[httpx.Client] = None,
    ):
        self.base_urls = {env: (url or "").rstrip("/") for env, url in base_urls.items()}
        self.max_retries = int(max_retries)
        self.backoff_seconds = float(backoff_seconds)
        self._sleep = sleep
        self._client = client or httpx.Client(timeout=timeout)

    def _url(self, env: HkaEnv, path: str) -> str:
        base = self.base_urls.get(env)
        if not base:
            raise HkaError(f"Configuration error: no HKA REST base URL for '{env.value}'.", status=500)
        return f"{base}{path}"

    def _backoff(self, attempt: int) -> None:
        self._sleep(self.backoff_seconds * (2**attempt))

    def request(
        self,
        env: HkaEnv,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> Any:
        url = self._url(env, path)
        req_headers: Dict[str, str] = {"Accept": "application/json"}
        if token:
            req_headers["Authorization"] = f"Bearer {token}"
        req_headers.update(headers or {})

        attempt = 0
        while True:
            try:
                resp = self._client.request(method, url, headers=req_headers, **kwargs)
            except httpx.TransportError as exc:
                if attempt < self.max_retries:
                    logger.warning("HKA request %s %s failed with network error. Retrying... (attempt %s)", method, path, attempt + 1)
                    self._backoff(attempt)
                    attempt += 1
                    continue
                raise HkaError(
                    str(exc) or "A network error occurred.",
                    status=502,
                    attempts=attempt + 1,
                ) from exc

            if resp.is_success:
                if resp.status_code == 204:
                    return None
                content_type = resp.headers.get("content-type", "")
                if "application/json" in content_type:
                    return resp.json()
                return resp.text

            if resp.status_code >= 500 and attempt < self.max_retries:
                logger.warning("HKA request %s %s failed with status %s. Retrying... (attempt %s)", method, path, resp.status_code, attempt + 1)
                self._backoff(attempt)
                attempt += 1
                continue

            body = _error_body(resp)
            raise HkaError(
                str(body.get("message") or f"HTTP Error: {resp.status_code}"),
                status=resp.status_code,
                body=body,
                attempts=attempt + 1,
            )

    @staticmethod
    def _as_dict(data: Any, operation: str) -> Dict[str, Any]:
        if isinstance(data, dict):
            return data
        raise HkaError(f"HKA response was empty or invalid for {operation}.", status=502, body={"message": str(data or "")})

    def authenticate(self, credentials: HkaCredentials) -> AuthResult:
        data = self.request(credentials.env, "POST", "/auth/token", json={"apiKey": credentials.api_key})
        data = data if isinstance(data, dict) else {}
        token = data.get("token") or data.get("access_token")
        if not token:
            raise HkaError("Authentication failed: No token received.", status=401, body=data)
        expires_in = data.get("expiresIn") or data.get("expires_in")
        return AuthResult(token=str(token), expires_in=float(expires_in) if expires_in else None)

    def emit(self, *, token: str, credentials: HkaCredentials, xml: str) -> Dict[str, Any]:
        data = self.request(
            credentials.env,
            "POST",
            "/invoices/timbrar",
            token=token,
            headers={"Content-Type": "application/xml"},
            content=xml.encode("utf-8"),
        )
        return self._as_dict(data, "timbrar")

    def query(self, *, token: str, credentials: HkaCredentials, document_id: str) -> Dict[str, Any]:
        data = self.request(credentials.env, "GET", f"/invoices/status/{document_id}", token=token)
        return self._as_dict(data, "status")

    def cancel(self, *, token: str, credentials: HkaCredentials, document_id: str, reason: str) -> Dict[str, Any]:
        data = self.request(
            credentials.env,
            "POST",
            "/invoices/cancel",
            token=token,
            json={"id": document_id, "reason": reason},
        )
        return self._as_dict(data, "cancel")

    def folios(self, *, token: str, credentials: HkaCredentials) -> Dict[str, Any]:
        data = self.request(credentials.env, "GET", "/folios", token=token)
        return self._as_dict(data, "folios")

    def close(self) -> None:
        self._client.close()
