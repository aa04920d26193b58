from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    CERTIFIED = "certified"
    FAILED = "failed"
    ERROR = "error"


class SubmissionSource(str, Enum):
    MANUAL = "manual"
    WEBHOOK = "webhook"


class _FirestoreModel(BaseModel):
    # Python attributes are snake_case; Firestore documents and JSON use camelCase.
    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})


class InvoiceSubmission(_FirestoreModel):
    id: str
    submission_date: str = Field(alias="submissionDate")
    invoice_data: str = Field(alias="invoiceData")
    status: SubmissionStatus = SubmissionStatus.PENDING
    hka_response_id: Optional[str] = Field(default=None, alias="hkaResponseId")
    source: Optional[SubmissionSource] = None
    config_id: Optional[str] = Field(default=None, alias="configId")

    environment: Optional[str] = None
    external_id: Optional[str] = Field(default=None, alias="externalId")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")


class HkaResponseRecord(_FirestoreModel):
    id: str
    response_date: str = Field(alias="responseDate")
    status_code: int = Field(alias="statusCode")
    response_body: str = Field(alias="responseBody")
    invoice_submission_id: Optional[str] = Field(default=None, alias="invoiceSubmissionId")


class SubmitInvoiceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Optional so a missing invoice gets the API's own 400 message.
    invoice: Optional[Dict[str, Any]] = None
    environment: Optional[str] = None
    config_id: Optional[str] = Field(default=None, alias="configId")


class RetrySubmissionRequest(BaseModel):
    environment: Optional[str] = None


class SubmissionDetail(BaseModel):
    submission: InvoiceSubmission
    response: Optional[HkaResponseRecord] = None


class SubmissionListResponse(BaseModel):
    submissions: List[InvoiceSubmission]
    total: int


class StaleRunResponse(BaseModel):
    ok: bool = True
    updated: int
