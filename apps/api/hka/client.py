from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, Dict, Optional, TypeVar

from fastapi import Depends

from ..database import get_db
from ..settings import settings
from ..utils import utcnow_iso
from .cache import SessionCache
from .credentials import parse_env, resolve_credentials
from .errors import HkaError
from .models import HkaCancelResult, HkaCredentials, HkaStatusResult
from .status import is_accepted, map_vendor_status, vendor_cufe, vendor_estado, vendor_message
from .transport import HkaTransport, get_transport
from .xml_builder import convert_invoice_to_xml

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HkaClient:
    """Operations against The Factory HKA for one request.

    Credentials are resolved on every call (per-client configuration or
    environment variables); sessions are reused through the injected
    SessionCache and renewed once when HKA rejects a cached token.
    """

    def __init__(
        self,
        *,
        db: Any,
        transport: HkaTransport,
        session_cache: SessionCache,
        folios_transport: Optional[HkaTransport] = None,
    ):
        self.db = db
        self.transport = transport
        self.session_cache = session_cache
        self._folios_transport = folios_transport

    @property
    def folios_transport(self) -> HkaTransport:
        # Folios only exist on the REST API; the mock answers them itself.
        if self._folios_transport is None:
            self._folios_transport = self.transport if self.transport.name in {"mock", "rest"} else shared_transport("rest")
        return self._folios_transport

    def _credentials(self, transport: HkaTransport, config_id: Optional[str], env: Any) -> HkaCredentials:
        return resolve_credentials(
            db=self.db,
            config_id=config_id,
            env=parse_env(env),
            required=transport.required_fields,
        )

    def _session(self, transport: HkaTransport, credentials: HkaCredentials) -> str:
        key = (transport.name, credentials.env.value, credentials.owner)
        token = self.session_cache.get(key)
        if token:
            return token
        logger.info("HKA %s session for %s/%s is expired or not found. Authenticating...", transport.name, credentials.owner, credentials.env.value)
        auth = transport.authenticate(credentials)
        self.session_cache.put(key, auth.token, auth.expires_in)
        return auth.token

    def _call(self, transport: HkaTransport, credentials: HkaCredentials, fn: Callable[[str], T]) -> T:
        token = self._session(transport, credentials)
        try:
            return fn(token)
        except HkaError as e:
            if not e.is_auth_error:
                raise
            logger.warning("HKA rejected the cached %s session for %s; re-authenticating", transport.name, credentials.owner)
            self.session_cache.invalidate((transport.name, credentials.env.value, credentials.owner))
            return fn(self._session(transport, credentials))

    def timbrar(self, payload: Dict[str, Any], config_id: Optional[str] = None, env: Any = None) -> Dict[str, Any]:
        """Stamp an invoice. Returns the vendor result plus `uuid` (the CUFE)."""
        credentials = self._credentials(self.transport, config_id, env)
        emisor = credentials.emisor
        if emisor is None or not emisor.ruc:
            raise HkaError(
                "Configuration error: the issuer RUC is not configured (companyRuc / HKA_EMISOR_RUC).",
                status=500,
            )
        xml = convert_invoice_to_xml(payload, emisor)

        result = self._call(
            self.transport,
            credentials,
            lambda token: self.transport.emit(token=token, credentials=credentials, xml=xml),
        )
        if not is_accepted(result):
            raise HkaError(vendor_message(result, "HKA rejected the document."), body=result)

        logger.info("HKA accepted document %s (config=%s, env=%s)", vendor_cufe(result), credentials.owner, credentials.env.value)
        return {**result, "uuid": vendor_cufe(result)}

    def consultar_estado(self, document_id: str, config_id: Optional[str] = None, env: Any = None) -> HkaStatusResult:
        credentials = self._credentials(self.transport, config_id, env)
        result = self._call(
            self.transport,
            credentials,
            lambda token: self.transport.query(token=token, credentials=credentials, document_id=document_id),
        )
        estado = vendor_estado(result)
        return HkaStatusResult(
            status=map_vendor_status(estado),
            message=f"El documento con CUFE {document_id} se encuentra en estado: {estado or 'DESCONOCIDO'}",
            uuid=vendor_cufe(result) or document_id,
            folio=str(result.get("Folio") or result.get("folio") or document_id),
            timestamp=utcnow_iso(),
        )

    def anular(self, document_id: str, reason: str, config_id: Optional[str] = None, env: Any = None) -> HkaCancelResult:
        credentials = self._credentials(self.transport, config_id, env)
        result = self._call(
            self.transport,
            credentials,
            lambda token: self.transport.cancel(token=token, credentials=credentials, document_id=document_id, reason=reason),
        )
        if not is_accepted(result):
            raise HkaError(vendor_message(result, "HKA failed to cancel the document."), body=result)
        return HkaCancelResult(
            success=True,
            message=vendor_message(result, "Documento anulado con éxito."),
            uuid=document_id,
        )

    def consultar_folios(self, config_id: Optional[str] = None, env: Any = None) -> int:
        transport = self.folios_transport
        credentials = self._credentials(transport, config_id, env)
        data = self._call(transport, credentials, lambda token: transport.folios(token=token, credentials=credentials))
        remaining = data.get("remaining_folios")
        if isinstance(remaining, bool) or not isinstance(remaining, (int, float)):
            raise HkaError("Invalid response format for folios query.", status=502, body=data)
        return int(remaining)

    def validate_credentials(self, env: Any, usuario: str, clave: str) -> Dict[str, Any]:
        """Authenticate with the given credentials without touching the session cache.

        On the REST transport `clave` is the api key.
        """
        hka_env = parse_env(env)
        credentials = HkaCredentials(env=hka_env, usuario=usuario, clave=clave, api_key=clave)
        self.transport.authenticate(credentials)
        return {"valid": True, "message": f"Credenciales válidas para el ambiente '{hka_env.value}'."}


_SESSION_CACHE = SessionCache(ttl_seconds=settings.HKA_SESSION_TTL_SECONDS)


@lru_cache(maxsize=None)
def shared_transport(name: str) -> HkaTransport:
    # WSDL parsing and HTTP connection pools are reused across requests.
    return get_transport(name)


def get_hka_client(db: Any = Depends(get_db)) -> HkaClient:
    """FastAPI dependency; overridden in tests."""
    name = (settings.HKA_TRANSPORT or "").strip().lower()
    return HkaClient(db=db, transport=shared_transport(name), session_cache=_SESSION_CACHE)
