from __future__ import annotations

import unicodedata
from typing import Any, Dict, Optional

from .models import DocumentStatus

ACCEPTED = "ACEPTADO"

_VENDOR_STATUS: Dict[str, DocumentStatus] = {
    "ACEPTADO": DocumentStatus.STAMPED,
    "AUTORIZADO": DocumentStatus.STAMPED,
    "ANULADO": DocumentStatus.CANCELLED,
    "CANCELADO": DocumentStatus.CANCELLED,
    "RECHAZADO": DocumentStatus.FAILED,
    "ERROR": DocumentStatus.FAILED,
    "NO ENCONTRADO": DocumentStatus.NOT_FOUND,
    "NO_ENCONTRADO": DocumentStatus.NOT_FOUND,
    "NO EXISTE": DocumentStatus.NOT_FOUND,
    "NO_EXISTE": DocumentStatus.NOT_FOUND,
}


def normalize_vendor_status(value: Any) -> str:
    text = unicodedata.normalize("NFKD", str(value or "")).encode("ascii", "ignore").decode("ascii")
    return " ".join(text.strip().upper().split())


def map_vendor_status(value: Any) -> DocumentStatus:
    """Map an HKA `Estado` string to the internal status; unknown values are still processing."""
    return _VENDOR_STATUS.get(normalize_vendor_status(value), DocumentStatus.PROCESSING)


def vendor_estado(result: Dict[str, Any]) -> Optional[str]:
    # SOAP answers use `Estado`; the REST API uses lowercase keys.
    for key in ("Estado", "estado", "status"):
        if result.get(key):
            return str(result[key])
    return None


def is_accepted(result: Dict[str, Any]) -> bool:
    return normalize_vendor_status(vendor_estado(result)) == ACCEPTED


def vendor_message(result: Dict[str, Any], default: str) -> str:
    errores = result.get("Errores") or result.get("errores")
    if isinstance(errores, list) and errores:
        return ", ".join(str(e) for e in errores)
    for key in ("Mensaje", "mensaje", "message"):
        if result.get(key):
            return str(result[key])
    return default


def vendor_cufe(result: Dict[str, Any]) -> Optional[str]:
    for key in ("CUFE", "cufe", "uuid"):
        if result.get(key):
            return str(result[key])
    return None
