from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

from ..settings import settings
from .errors import HkaError
from .models import HkaCredentials, HkaEnv


@dataclass(frozen=True)
class AuthResult:
    token: str
    # Seconds until HKA expires the token, when the vendor reports it.
    expires_in: Optional[float] = None


class HkaTransport(Protocol):
    name: str
    # HkaCredentials attributes this transport needs for an environment.
    required_fields: Tuple[str, ...]

    def authenticate(self, credentials: HkaCredentials) -> AuthResult:
        ...

    def emit(self, *, token: str, credentials: HkaCredentials, xml: str) -> Dict[str, Any]:
        ...

    def query(self, *, token: str, credentials: HkaCredentials, document_id: str) -> Dict[str, Any]:
        ...

    def cancel(self, *, token: str, credentials: HkaCredentials, document_id: str, reason: str) -> Dict[str, Any]:
        ...

    def folios(self, *, token: str, credentials: HkaCredentials) -> Dict[str, Any]:
        ...


class MockTransport:
    """In-process stand-in for HKA used in sandboxes and local development."""

    name = "mock"
    required_fields: Tuple[str, ...] = ()

    def __init__(self, remaining_folios: int = 742):
        self.remaining_folios = remaining_folios

    def authenticate(self, credentials: HkaCredentials) -> AuthResult:
        return AuthResult(token=f"mock-{credentials.env.value}-{credentials.owner}")

    def emit(self, *, token: str, credentials: HkaCredentials, xml: str) -> Dict[str, Any]:
        # Deterministic behavior: the same document always gets the same CUFE.
        digest = hashlib.sha1(xml.encode("utf-8")).hexdigest()[:20].upper()
        return {
            "Estado": "ACEPTADO",
            "CUFE": f"FE-MOCK-{digest}",
            "Mensaje": "Documento aceptado (simulado).",
        }

    def query(self, *, token: str, credentials: HkaCredentials, document_id: str) -> Dict[str, Any]:
        return {"Estado": "ACEPTADO", "CUFE": document_id}

    def cancel(self, *, token: str, credentials: HkaCredentials, document_id: str, reason: str) -> Dict[str, Any]:
        return {"Estado": "ACEPTADO", "Mensaje": "Documento anulado con éxito (simulado)."}

    def folios(self, *, token: str, credentials: HkaCredentials) -> Dict[str, Any]:
        return {"remaining_folios": self.remaining_folios}


def get_transport(name: str | None = None) -> HkaTransport:
    n = (name or settings.HKA_TRANSPORT or "").strip().lower()
    if n == "soap":
        from .soap import SoapTransport

        return SoapTransport(
            wsdl_urls={HkaEnv.DEMO: settings.HKA_WSDL_URL_DEMO, HkaEnv.PROD: settings.HKA_WSDL_URL_PROD},
            timeout=settings.HKA_TIMEOUT_SECONDS,
        )
    if n == "rest":
        from .rest import RestTransport

        return RestTransport(
            base_urls={HkaEnv.DEMO: settings.HKA_REST_BASE_URL_DEMO, HkaEnv.PROD: settings.HKA_REST_BASE_URL_PROD},
            timeout=settings.HKA_TIMEOUT_SECONDS,
            max_retries=settings.HKA_MAX_RETRIES,
        )
    if n == "mock":
        return MockTransport()
    raise HkaError(f"Configuration error: unknown HKA transport '{n}'. Use soap, rest or mock.", status=500)
