from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HkaEnv(str, Enum):
    DEMO = "demo"
    PROD = "prod"


class DocumentStatus(str, Enum):
    STAMPED = "stamped"
    CANCELLED = "cancelled"
    PROCESSING = "processing"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    # Only produced by the status route when the lookup itself fails.
    ERROR = "error"


@dataclass(frozen=True)
class Emisor:
    ruc: str
    dv: str = "00"
    name: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class HkaCredentials:
    env: HkaEnv
    usuario: str = ""
    clave: str = ""
    api_key: str = ""
    # None when the credentials came from environment variables.
    config_id: Optional[str] = None
    emisor: Optional[Emisor] = None

    @property
    def owner(self) -> str:
        return self.config_id or "env"


class InvoiceItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    desc: str
    qty: float
    unit_price: float = Field(alias="unitPrice")


class InvoicePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    external_id: str = Field(alias="externalId")
    customer_name: str = Field(alias="customerName")
    customer_ruc: str = Field(alias="customerRuc")
    items: List[InvoiceItem] = Field(min_length=1)


class HkaStatusResult(BaseModel):
    status: DocumentStatus
    message: str
    uuid: Optional[str] = None
    folio: Optional[str] = None
    timestamp: Optional[str] = None


class HkaCancelResult(BaseModel):
    success: bool = True
    message: str
    uuid: Optional[str] = None
