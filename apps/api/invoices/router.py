from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from ..auth import get_current_user
from ..database import get_db
from ..hka.client import HkaClient, get_hka_client
from ..hka.credentials import find_configuration_by_identifier
from ..hka.errors import HkaError, InvoicePayloadError
from ..settings import settings
from .models import (
    RetrySubmissionRequest,
    StaleRunResponse,
    SubmissionDetail,
    SubmissionListResponse,
    SubmissionSource,
    SubmitInvoiceRequest,
)
from .repo import SubmissionNotFound, get_response, get_submission, list_submissions, mark_stale_submissions
from .service import retry_submission, submit_invoice
from .state import SubmissionStateError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["Invoices"])

MISSING_INVOICE = "El payload de la factura (invoice) es requerido."


def _check_webhook_secret(webhook_secret: Optional[str]) -> None:
    if settings.HKA_WEBHOOK_SECRET:
        if (webhook_secret or "") != settings.HKA_WEBHOOK_SECRET:
            raise HTTPException(status_code=401, detail="Invalid webhook secret")


def _webhook_env(environment: Optional[str]) -> str:
    # Webhook callers default to demo unless they explicitly ask for prod.
    return "prod" if environment == "prod" else "demo"


def _raise_webhook_error(e: Exception, tag: str) -> NoReturn:
    if isinstance(e, HkaError):
        raise HTTPException(
            status_code=e.status or 500,
            detail={"message": "Error al procesar la factura con HKA.", "error": e.to_dict()},
        )
    if isinstance(e, InvoicePayloadError):
        raise HTTPException(status_code=400, detail=str(e))
    logger.exception("[%s] Unexpected error", tag)
    raise HTTPException(status_code=500, detail={"message": "Error interno del servidor.", "error": str(e)})


async def _webhook_submit(*, db: Any, hka: HkaClient, req: SubmitInvoiceRequest, config_id: Optional[str], tag: str) -> Dict[str, Any]:
    if not req.invoice:
        logger.error("[%s] Validation error: missing 'invoice' payload", tag)
        raise HTTPException(status_code=400, detail=MISSING_INVOICE)

    try:
        submission, hka_response = await asyncio.to_thread(
            submit_invoice,
            db=db,
            hka=hka,
            invoice=req.invoice,
            source=SubmissionSource.WEBHOOK,
            config_id=config_id,
            env=_webhook_env(req.environment),
        )
    except Exception as e:
        logger.error("[%s] Error processing invoice: %s", tag, e)
        _raise_webhook_error(e, tag)

    return {
        "success": True,
        "uuid": hka_response.get("uuid") or f"uuid-{int(time.time() * 1000)}",
        "message": "Factura procesada y timbrada exitosamente.",
        "submissionId": submission.id,
    }


@router.post("/api/webhooks/invoices/{identifier}")
async def webhook_invoice_for_identifier(
    identifier: str,
    req: SubmitInvoiceRequest,
    db: Any = Depends(get_db),
    hka: HkaClient = Depends(get_hka_client),
    webhook_secret: str | None = Header(default=None, alias="X-Webhook-Secret"),
):
    _check_webhook_secret(webhook_secret)
    tag = f"WEBHOOK {identifier}"
    logger.info("[%s] Received request", tag)

    try:
        config = await asyncio.to_thread(find_configuration_by_identifier, db, identifier)
    except Exception as e:
        logger.exception("[%s] Configuration lookup failed", tag)
        raise HTTPException(status_code=500, detail={"message": "Error interno del servidor.", "error": str(e)})
    if not config:
        logger.error("[%s] No configuration found", tag)
        raise HTTPException(status_code=404, detail=f"No configuration found for webhook identifier '{identifier}'.")

    return await _webhook_submit(db=db, hka=hka, req=req, config_id=config["id"], tag=tag)


@router.post("/api/webhooks/invoices")
async def webhook_invoice(
    req: SubmitInvoiceRequest,
    db: Any = Depends(get_db),
    hka: HkaClient = Depends(get_hka_client),
    webhook_secret: str | None = Header(default=None, alias="X-Webhook-Secret"),
):
    # Uses the static HKA_* credentials from the environment.
    _check_webhook_secret(webhook_secret)
    return await _webhook_submit(db=db, hka=hka, req=req, config_id=None, tag="WEBHOOK")


@router.post("/api/hka/timbrar")
async def hka_timbrar(
    req: SubmitInvoiceRequest,
    db: Any = Depends(get_db),
    hka: HkaClient = Depends(get_hka_client),
):
    if not req.invoice:
        raise HTTPException(status_code=400, detail=MISSING_INVOICE)

    try:
        submission, hka_response = await asyncio.to_thread(
            submit_invoice,
            db=db,
            hka=hka,
            invoice=req.invoice,
            source=SubmissionSource.MANUAL,
            config_id=req.config_id,
            env=req.environment,
        )
    except HkaError as e:
        logger.error("Manual stamping failed: %s", e)
        raise HTTPException(status_code=e.status or 500, detail={"message": e.body_message()})
    except InvoicePayloadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Manual stamping failed")
        raise HTTPException(status_code=500, detail={"message": "Error interno del servidor.", "error": str(e)})

    return {**hka_response, "submissionId": submission.id}


@router.get("/api/invoices/submissions", response_model=SubmissionListResponse)
async def submissions_list(
    limit: int = 100,
    status: Optional[str] = None,
    configId: Optional[str] = None,
    dateFrom: Optional[str] = None,
    dateTo: Optional[str] = None,
    db: Any = Depends(get_db),
    user: Dict[str, Any] = Depends(get_current_user),
):
    try:
        items = await asyncio.to_thread(
            list_submissions,
            db=db,
            limit=limit,
            status=status,
            config_id=configId,
            date_from=dateFrom,
            date_to=dateTo,
        )
        return SubmissionListResponse(submissions=items, total=len(items))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/api/invoices/submissions/{submission_id}", response_model=SubmissionDetail)
async def submissions_get(
    submission_id: str,
    db: Any = Depends(get_db),
    user: Dict[str, Any] = Depends(get_current_user),
):
    try:
        sub = await asyncio.to_thread(get_submission, db=db, submission_id=submission_id)
    except SubmissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    response = await asyncio.to_thread(get_response, db=db, response_id=sub.hka_response_id)
    return SubmissionDetail(submission=sub, response=response)


@router.post("/api/invoices/submissions/{submission_id}/retry")
async def submissions_retry(
    submission_id: str,
    req: Optional[RetrySubmissionRequest] = None,
    db: Any = Depends(get_db),
    hka: HkaClient = Depends(get_hka_client),
    user: Dict[str, Any] = Depends(get_current_user),
):
    env = req.environment if req else None
    try:
        submission, hka_response = await asyncio.to_thread(
            retry_submission, db=db, hka=hka, submission_id=submission_id, env=env
        )
    except SubmissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SubmissionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error("Retry failed for submission %s: %s", submission_id, e)
        _raise_webhook_error(e, f"RETRY {submission_id}")

    return {
        "success": True,
        "uuid": hka_response.get("uuid"),
        "message": "Factura reenviada y timbrada exitosamente.",
        "submissionId": submission.id,
        "status": submission.status.value,
    }


@router.post("/api/invoices/stale/run", response_model=StaleRunResponse)
async def submissions_mark_stale(
    olderThanMinutes: Optional[int] = None,
    db: Any = Depends(get_db),
    user: Dict[str, Any] = Depends(get_current_user),
):
    minutes = olderThanMinutes if olderThanMinutes is not None else settings.STALE_SUBMISSION_MINUTES
    if minutes < 1:
        raise HTTPException(status_code=400, detail="olderThanMinutes must be at least 1")
    updated = await asyncio.to_thread(mark_stale_submissions, db=db, older_than_minutes=minutes)
    return StaleRunResponse(updated=updated)
