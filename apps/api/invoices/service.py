from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Tuple

from ..hka.client import HkaClient
from ..hka.errors import HkaError, InvoicePayloadError
from . import repo
from .models import InvoiceSubmission, SubmissionSource, SubmissionStatus
from .state import SubmissionStateError, assert_transition

logger = logging.getLogger(__name__)


def failure_status(error: Exception) -> SubmissionStatus:
    return SubmissionStatus.FAILED if isinstance(error, HkaError) else SubmissionStatus.ERROR


def failure_status_code(error: Exception) -> int:
    if isinstance(error, HkaError):
        return int(error.status or 500)
    if isinstance(error, InvoicePayloadError):
        return 400
    return 500


def _record_failure(*, db: Any, submission_id: Optional[str], error: Exception) -> None:
    """Best-effort bookkeeping after a failed certification.

    Firestore errors here are logged and swallowed so the caller still sees
    the certification error.
    """
    status = failure_status(error)
    body = getattr(error, "body", None) or {"message": str(error)}
    hka_response_id: Optional[str] = None

    try:
        rec = repo.record_response(
            db=db,
            submission_id=submission_id,
            status_code=failure_status_code(error),
            body=body,
        )
        hka_response_id = rec.id
    except Exception as db_error:
        logger.error("Error saving HKA error response for submission %s: %s", submission_id, db_error)

    if not submission_id:
        return
    try:
        repo.update_submission_status(
            db=db,
            submission_id=submission_id,
            new_status=status,
            hka_response_id=hka_response_id,
        )
    except Exception as update_error:
        logger.error("Error updating submission %s to '%s' after a failure: %s", submission_id, status.value, update_error)


def certify_submission(
    *,
    db: Any,
    hka: HkaClient,
    submission: InvoiceSubmission,
    invoice: Dict[str, Any],
    config_id: Optional[str],
    env: Optional[str],
) -> Tuple[InvoiceSubmission, Dict[str, Any]]:
    """Stamp a pending submission and persist the outcome.

    Success: response record with statusCode 200 and status `certified`.
    Failure: error response record, status `failed` (HKA) or `error`
    (anything else), then the exception is re-raised.
    """
    try:
        hka_response = hka.timbrar(invoice, config_id=config_id, env=env)
        rec = repo.record_response(db=db, submission_id=submission.id, status_code=200, body=hka_response)
        updated = repo.update_submission_status(
            db=db,
            submission_id=submission.id,
            new_status=SubmissionStatus.CERTIFIED,
            hka_response_id=rec.id,
        )
        return updated, hka_response
    except Exception as e:
        logger.error("Certification failed for submission %s: %s", submission.id, e)
        _record_failure(db=db, submission_id=submission.id, error=e)
        raise


def submit_invoice(
    *,
    db: Any,
    hka: HkaClient,
    invoice: Dict[str, Any],
    source: SubmissionSource,
    config_id: Optional[str],
    env: Optional[str],
) -> Tuple[InvoiceSubmission, Dict[str, Any]]:
    # Duplicate deliveries are not deduplicated: every call creates a new submission.
    submission = repo.create_submission(
        db=db,
        invoice=invoice,
        source=source,
        config_id=config_id,
        environment=env,
    )
    return certify_submission(db=db, hka=hka, submission=submission, invoice=invoice, config_id=config_id, env=env)


def retry_submission(
    *,
    db: Any,
    hka: HkaClient,
    submission_id: str,
    env: Optional[str] = None,
) -> Tuple[InvoiceSubmission, Dict[str, Any]]:
    """Re-run certification for a `failed` or `error` submission."""
    submission = repo.get_submission(db=db, submission_id=submission_id)
    if submission.status == SubmissionStatus.PENDING:
        raise SubmissionStateError("La sumisión todavía está pendiente.")
    assert_transition(submission.status, SubmissionStatus.PENDING)

    try:
        invoice = json.loads(submission.invoice_data)
    except ValueError:
        raise InvoicePayloadError("Los datos de la factura guardados no son JSON válido.")

    pending = repo.update_submission_status(
        db=db,
        submission_id=submission.id,
        new_status=SubmissionStatus.PENDING,
        hka_response_id=None,
    )
    logger.info("Retrying submission %s (previous status=%s)", submission.id, submission.status.value)
    return certify_submission(
        db=db,
        hka=hka,
        submission=pending,
        invoice=invoice,
        config_id=submission.config_id,
        env=env or submission.environment,
    )
