from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from zeep import Client, Settings
from zeep.exceptions import Error as ZeepError
from zeep.exceptions import Fault, TransportError
from zeep.helpers import serialize_object
from zeep.transports import Transport

from .errors import HkaError
from .models import HkaCredentials, HkaEnv
from .transport import AuthResult

logger = logging.getLogger(__name__)

_AUTH_FAULT_RE = re.compile(r"token|autentic|credencial", re.IGNORECASE)


def _fault_status(message: str) -> int:
    return 401 if _AUTH_FAULT_RE.search(message or "") else 500


class SoapTransport:
    """HKA WSDL service (Autenticar / EmitirDocumento / ConsultarDocumento / AnularDocumento).

    Results come back as JSON strings wrapped in `<Operation>Result`. No retry.
    """

    name = "soap"
    required_fields: Tuple[str, ...] = ("usuario", "clave")

    def __init__(
        self,
        wsdl_urls: Dict[HkaEnv, str],
        *,
        timeout: float = 30.0,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        self.wsdl_urls = dict(wsdl_urls)
        self.timeout = float(timeout)
        self._client_factory = client_factory or self._build_client
        self._clients: Dict[HkaEnv, Any] = {}

    def _build_client(self, wsdl_url: str) -> Any:
        transport = Transport(timeout=self.timeout, operation_timeout=self.timeout)
        return Client(wsdl=wsdl_url, transport=transport, settings=Settings(strict=False, xml_huge_tree=True))

    def _client(self, env: HkaEnv) -> Any:
        if env in self._clients:
            return self._clients[env]
        wsdl_url = self.wsdl_urls.get(env)
        if not wsdl_url:
            raise HkaError(f"Configuration error: no HKA WSDL URL for '{env.value}'.", status=500)
        logger.info("Loading HKA WSDL for %s: %s", env.value, wsdl_url)
        try:
            client = self._client_factory(wsdl_url)
        except (ZeepError, requests.RequestException) as e:
            raise HkaError(f"Could not load HKA WSDL: {e}", status=502) from e
        self._clients[env] = client
        return client

    def call(self, env: HkaEnv, operation: str, **kwargs: Any) -> Any:
        client = self._client(env)
        try:
            return getattr(client.service, operation)(**kwargs)
        except Fault as e:
            message = str(e.message or "")
            raise HkaError(
                message or f"SOAP call to {operation} failed.",
                status=_fault_status(message),
                body={"message": message, "code": e.code},
            ) from e
        except TransportError as e:
            raise HkaError(
                f"SOAP call to {operation} failed: HTTP {e.status_code}",
                status=e.status_code or 502,
                body={"message": str(e.message or "")},
            ) from e
        except requests.RequestException as e:
            raise HkaError(str(e) or f"SOAP call to {operation} failed.", status=502) from e

    @staticmethod
    def result(raw: Any, operation: str) -> Dict[str, Any]:
        """Unwrap `<operation>Result` and decode the JSON string HKA puts in it."""
        value = serialize_object(raw)
        if isinstance(value, dict) and f"{operation}Result" in value:
            value = value[f"{operation}Result"]
        if isinstance(value, str) and value.strip():
            try:
                value = json.loads(value)
            except ValueError:
                raise HkaError(f"HKA response was empty or invalid for {operation}.", status=502, body={"message": value})
        if not isinstance(value, dict) or not value:
            raise HkaError(f"HKA response was empty or invalid for {operation}.", status=502)
        return dict(value)

    def authenticate(self, credentials: HkaCredentials) -> AuthResult:
        raw = self.call(credentials.env, "Autenticar", usuario=credentials.usuario, clave=credentials.clave)
        try:
            data = self.result(raw, "Autenticar")
        except HkaError as e:
            raise HkaError("Authentication failed: No token received.", status=401, body=e.body) from e
        token = data.get("Token") or data.get("token")
        if not token:
            raise HkaError("Authentication failed: No token received.", status=401, body=data)
        return AuthResult(token=str(token))

    def emit(self, *, token: str, credentials: HkaCredentials, xml: str) -> Dict[str, Any]:
        documento = base64.b64encode(xml.encode("utf-8")).decode("ascii")
        raw = self.call(
            credentials.env,
            "EmitirDocumento",
            token=token,
            tipoDocumento="FE",
            documentoXML=documento,
            formatoRespuesta="JSON",
        )
        return self.result(raw, "EmitirDocumento")

    def query(self, *, token: str, credentials: HkaCredentials, document_id: str) -> Dict[str, Any]:
        raw = self.call(credentials.env, "ConsultarDocumento", token=token, cufe=document_id)
        return self.result(raw, "ConsultarDocumento")

    def cancel(self, *, token: str, credentials: HkaCredentials, document_id: str, reason: str) -> Dict[str, Any]:
        raw = self.call(credentials.env, "AnularDocumento", token=token, cufe=document_id, motivo=reason)
        return self.result(raw, "AnularDocumento")

    def folios(self, *, token: str, credentials: HkaCredentials) -> Dict[str, Any]:
        raise HkaError("The HKA SOAP service does not expose remaining folios.", status=501)
