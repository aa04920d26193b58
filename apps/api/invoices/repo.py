from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from firebase_admin import firestore

from ..database import HKA_RESPONSES, INVOICE_SUBMISSIONS
from ..utils import new_doc_id, parse_any_date, to_stored_iso, utcnow, utcnow_iso
from .models import HkaResponseRecord, InvoiceSubmission, SubmissionSource, SubmissionStatus
from .state import assert_transition

logger = logging.getLogger(__name__)

# Upper bound on documents returned by one listing.
_MAX_LIST = 1000


class SubmissionNotFound(LookupError):
    pass


def _submission_doc_ref(db: Any, submission_id: str):
    return db.collection(INVOICE_SUBMISSIONS).document(submission_id)


def _submission_from_snap(snap: Any) -> InvoiceSubmission:
    d = snap.to_dict() or {}
    d["id"] = snap.id
    return InvoiceSubmission.model_validate(d)


def _external_id(invoice: Dict[str, Any]) -> Optional[str]:
    value = invoice.get("externalId") if isinstance(invoice, dict) else None
    if value is None:
        return None
    return str(value).strip() or None


def create_submission(
    *,
    db: Any,
    invoice: Dict[str, Any],
    source: SubmissionSource,
    config_id: Optional[str],
    environment: Optional[str],
) -> InvoiceSubmission:
    now = utcnow_iso()
    sub = InvoiceSubmission(
        id=new_doc_id(),
        submission_date=now,
        invoice_data=json.dumps(invoice, ensure_ascii=False),
        status=SubmissionStatus.PENDING,
        hka_response_id=None,
        source=source,
        config_id=config_id,
        environment=environment,
        external_id=_external_id(invoice),
        updated_at=now,
    )
    _submission_doc_ref(db, sub.id).set(sub.to_document())
    logger.info("Created submission record %s (source=%s, config=%s)", sub.id, source.value, config_id)
    return sub


def record_response(*, db: Any, submission_id: Optional[str], status_code: int, body: Any) -> HkaResponseRecord:
    """Append an hkaResponses document; these are never updated."""
    rec = HkaResponseRecord(
        id=new_doc_id(),
        response_date=utcnow_iso(),
        status_code=int(status_code),
        response_body=json.dumps(body, ensure_ascii=False, default=str),
        invoice_submission_id=submission_id,
    )
    db.collection(HKA_RESPONSES).document(rec.id).set(rec.to_document())
    logger.info("Created HKA response record %s for submission %s (status=%s)", rec.id, submission_id, status_code)
    return rec


def get_submission(*, db: Any, submission_id: str) -> InvoiceSubmission:
    snap = _submission_doc_ref(db, submission_id).get()
    if not snap.exists:
        raise SubmissionNotFound(f"Submission '{submission_id}' not found.")
    return _submission_from_snap(snap)


def get_response(*, db: Any, response_id: Optional[str]) -> Optional[HkaResponseRecord]:
    if not response_id:
        return None
    snap = db.collection(HKA_RESPONSES).document(response_id).get()
    if not snap.exists:
        return None
    d = snap.to_dict() or {}
    d["id"] = snap.id
    return HkaResponseRecord.model_validate(d)


def update_submission_status(
    *,
    db: Any,
    submission_id: str,
    new_status: SubmissionStatus,
    hka_response_id: Optional[str],
) -> InvoiceSubmission:
    current = get_submission(db=db, submission_id=submission_id)
    assert_transition(current.status, new_status)

    patch = {
        "status": new_status.value,
        "hkaResponseId": hka_response_id,
        "updatedAt": utcnow_iso(),
    }
    _submission_doc_ref(db, submission_id).update(patch)
    logger.info("Updated submission %s to '%s'", submission_id, new_status.value)
    return current.model_copy(update={"status": new_status, "hka_response_id": hka_response_id, "updated_at": patch["updatedAt"]})


def list_submissions(
    *,
    db: Any,
    limit: int = 100,
    status: Optional[str] = None,
    config_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> List[InvoiceSubmission]:
    """Newest first; every filter runs in Firestore.

    Combining status or configId with the date ordering needs composite
    indexes on (status, submissionDate) and (configId, submissionDate).
    """
    status_filter: Optional[SubmissionStatus] = None
    if status:
        try:
            status_filter = SubmissionStatus(str(status).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown submission status '{status}'")

    start = parse_any_date(date_from) if date_from else None
    end = parse_any_date(date_to) if date_to else None
    if date_from and start is None:
        raise ValueError(f"Invalid dateFrom '{date_from}'")
    if date_to and end is None:
        raise ValueError(f"Invalid dateTo '{date_to}'")

    q = db.collection(INVOICE_SUBMISSIONS)
    if status_filter:
        q = q.where("status", "==", status_filter.value)
    if config_id:
        q = q.where("configId", "==", config_id)

    # submissionDate is a fixed-width ISO string, so string order is time order.
    if start:
        q = q.where("submissionDate", ">=", to_stored_iso(start))
    if end:
        q = q.where("submissionDate", "<=", to_stored_iso(end))
    q = q.order_by("submissionDate", direction=firestore.Query.DESCENDING)

    out: List[InvoiceSubmission] = []
    for snap in q.limit(max(0, min(int(limit), _MAX_LIST))).stream():
        try:
            sub = _submission_from_snap(snap)
        except Exception as e:
            logger.warning("Skipping malformed submission %s: %s", snap.id, e)
            continue
        out.append(sub)
    return out


def mark_stale_submissions(
    *,
    db: Any,
    older_than_minutes: int,
    now: Optional[datetime] = None,
    max_docs: int = 500,
) -> int:
    """Turn `pending` submissions older than the threshold into `error`.

    These are left behind when a request died between the HKA call and the
    status update.
    """
    cutoff = (now or utcnow()) - timedelta(minutes=int(older_than_minutes))
    updated = 0
    q = (
        db.collection(INVOICE_SUBMISSIONS)
        .where("status", "==", SubmissionStatus.PENDING.value)
        .where("submissionDate", "<=", to_stored_iso(cutoff))
        .order_by("submissionDate")
        .limit(int(max_docs))
    )
    for snap in q.stream():
        d = snap.to_dict() or {}
        submitted = parse_any_date(d.get("submissionDate"))
        if submitted is None or submitted > cutoff:
            continue
        try:
            update_submission_status(
                db=db,
                submission_id=snap.id,
                new_status=SubmissionStatus.ERROR,
                hka_response_id=d.get("hkaResponseId"),
            )
            updated += 1
        except Exception as e:
            logger.error("Could not mark stale submission %s: %s", snap.id, e)
    if updated:
        logger.warning("Marked %s stale pending submission(s) as error", updated)
    return updated
