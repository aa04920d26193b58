from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from .client import HkaClient, get_hka_client
from .errors import HkaError
from .models import DocumentStatus, HkaCancelResult, HkaStatusResult
from .schemas import CancelRequest, ValidateCredentialsRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/hka", tags=["HKA"])

_ENVIRONMENTS = {"demo", "prod"}

INTERNAL_ERROR = "Error interno del servidor."


def hka_http_error(e: HkaError) -> HTTPException:
    return HTTPException(status_code=e.status or 500, detail={"message": e.body_message()})


def internal_http_error(e: Exception) -> HTTPException:
    return HTTPException(status_code=500, detail={"message": INTERNAL_ERROR, "error": str(e)})


@router.get("/status/{invoice_id}", response_model=HkaStatusResult)
async def hka_status(
    invoice_id: str,
    configId: Optional[str] = None,
    env: Optional[str] = None,
    hka: HkaClient = Depends(get_hka_client),
):
    try:
        return await asyncio.to_thread(hka.consultar_estado, invoice_id, config_id=configId, env=env)
    except HkaError as e:
        logger.error("Status lookup failed for [%s]: %s", invoice_id, e)
        return JSONResponse(
            {"status": DocumentStatus.ERROR.value, "message": e.body_message(), "folio": invoice_id},
            status_code=e.status or 500,
        )
    except Exception as e:
        logger.exception("Status lookup failed for [%s]", invoice_id)
        return JSONResponse(
            {"status": DocumentStatus.ERROR.value, "message": INTERNAL_ERROR, "folio": invoice_id, "error": str(e)},
            status_code=500,
        )


@router.post("/cancel", response_model=HkaCancelResult)
async def hka_cancel(req: CancelRequest, hka: HkaClient = Depends(get_hka_client)):
    if not (req.invoice_id and req.reason and req.config_id and req.environment):
        raise HTTPException(status_code=400, detail="Los campos invoiceId, reason, configId y environment son requeridos.")
    try:
        return await asyncio.to_thread(
            hka.anular, req.invoice_id, req.reason, config_id=req.config_id, env=req.environment
        )
    except HkaError as e:
        logger.error("Cancellation failed for [%s]: %s", req.invoice_id, e)
        raise hka_http_error(e)
    except Exception as e:
        logger.exception("Cancellation failed for [%s]", req.invoice_id)
        raise internal_http_error(e)


@router.get("/folios")
async def hka_folios(
    configId: Optional[str] = None,
    env: Optional[str] = None,
    hka: HkaClient = Depends(get_hka_client),
):
    if not configId or not env:
        raise HTTPException(status_code=400, detail="Los parámetros configId y env son requeridos.")
    if env not in _ENVIRONMENTS:
        raise HTTPException(status_code=400, detail="El parámetro 'env' debe ser 'demo' o 'prod'.")
    try:
        return {"folios": await asyncio.to_thread(hka.consultar_folios, config_id=configId, env=env)}
    except HkaError as e:
        logger.error("Folios lookup failed for [%s]: %s", configId, e)
        raise hka_http_error(e)
    except Exception as e:
        logger.exception("Folios lookup failed for [%s]", configId)
        raise internal_http_error(e)


@router.post("/validate")
async def hka_validate(req: ValidateCredentialsRequest, hka: HkaClient = Depends(get_hka_client)):
    if not (req.environment and req.usuario and req.clave):
        raise HTTPException(status_code=400, detail="Los campos environment, usuario y clave son requeridos.")
    if req.environment not in _ENVIRONMENTS:
        raise HTTPException(status_code=400, detail="El 'environment' debe ser 'demo' o 'prod'.")
    try:
        return await asyncio.to_thread(hka.validate_credentials, req.environment, req.usuario, req.clave)
    except HkaError as e:
        logger.warning("Credential validation failed for %s: %s", req.environment, e)
        raise hka_http_error(e)
    except Exception as e:
        logger.exception("Credential validation failed for %s", req.environment)
        raise internal_http_error(e)
