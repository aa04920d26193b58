from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Fields are optional so missing values get the API's own 400 messages.


class CancelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invoice_id: Optional[str] = Field(default=None, alias="invoiceId")
    reason: Optional[str] = None
    config_id: Optional[str] = Field(default=None, alias="configId")
    environment: Optional[str] = None


class ValidateCredentialsRequest(BaseModel):
    environment: Optional[str] = None
    usuario: Optional[str] = None
    clave: Optional[str] = None
