from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from .auth import get_current_user
from .database import CONFIGURATIONS, get_db
from .utils import new_doc_id, utcnow_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/configurations", tags=["Configurations"])

_IDENTIFIER_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,62}$")


class ConfigurationFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_name: Optional[str] = Field(default=None, alias="companyName")
    company_ruc: Optional[str] = Field(default=None, alias="companyRuc")
    company_dv: Optional[str] = Field(default=None, alias="companyDv")
    company_address: Optional[str] = Field(default=None, alias="companyAddress")
    webhook_identifier: Optional[str] = Field(default=None, alias="webhookIdentifier")

    demo_user: Optional[str] = Field(default=None, alias="demoUser")
    demo_password: Optional[str] = Field(default=None, alias="demoPassword")
    demo_api_key: Optional[str] = Field(default=None, alias="demoApiKey")
    prod_user: Optional[str] = Field(default=None, alias="prodUser")
    prod_password: Optional[str] = Field(default=None, alias="prodPassword")
    prod_api_key: Optional[str] = Field(default=None, alias="prodApiKey")


class Configuration(ConfigurationFields):
    id: str
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")


class ConfigurationListResponse(BaseModel):
    configurations: List[Configuration]
    total: int


def _from_snap(snap: Any) -> Configuration:
    d = snap.to_dict() or {}
    d["id"] = snap.id
    return Configuration.model_validate(d)


def _normalize_identifier(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    ident = value.strip().lower()
    if not _IDENTIFIER_RE.match(ident):
        raise ValueError("webhookIdentifier must be 2-63 lowercase letters, digits or hyphens")
    return ident


def _identifier_taken(db: Any, identifier: str, exclude_id: Optional[str] = None) -> bool:
    for snap in db.collection(CONFIGURATIONS).where("webhookIdentifier", "==", identifier).limit(2).stream():
        if snap.id != exclude_id:
            return True
    return False


def list_configurations(*, db: Any, limit: int = 200) -> List[Configuration]:
    items = [_from_snap(s) for s in db.collection(CONFIGURATIONS).limit(int(limit)).stream()]
    items.sort(key=lambda c: (c.company_name or "").lower())
    return items


def get_configuration(*, db: Any, config_id: str) -> Optional[Configuration]:
    snap = db.collection(CONFIGURATIONS).document(config_id).get()
    return _from_snap(snap) if snap.exists else None


def save_configuration(*, db: Any, fields: ConfigurationFields, config_id: Optional[str] = None) -> Configuration:
    """Create (config_id=None) or partially update a configuration.

    Raises LookupError for an unknown id and ValueError for a taken or
    malformed webhook identifier.
    """
    now = utcnow_iso()
    patch: Dict[str, Any] = fields.model_dump(by_alias=True, exclude_unset=True)
    if "webhookIdentifier" in patch:
        patch["webhookIdentifier"] = _normalize_identifier(patch["webhookIdentifier"])
        if patch["webhookIdentifier"] and _identifier_taken(db, patch["webhookIdentifier"], exclude_id=config_id):
            raise ValueError(f"Webhook identifier '{patch['webhookIdentifier']}' is already in use")

    if config_id is None:
        config_id = new_doc_id()
        patch["createdAt"] = now
    elif not db.collection(CONFIGURATIONS).document(config_id).get().exists:
        raise LookupError(f"Configuration '{config_id}' not found.")

    patch["updatedAt"] = now
    doc_ref = db.collection(CONFIGURATIONS).document(config_id)
    doc_ref.set(patch, merge=True)
    logger.info("Saved configuration %s", config_id)
    return _from_snap(doc_ref.get())


def delete_configuration(*, db: Any, config_id: str) -> bool:
    doc_ref = db.collection(CONFIGURATIONS).document(config_id)
    if not doc_ref.get().exists:
        return False
    doc_ref.delete()
    return True


@router.get("", response_model=ConfigurationListResponse)
async def configurations_list(limit: int = 200, db: Any = Depends(get_db), user: Dict[str, Any] = Depends(get_current_user)):
    items = await asyncio.to_thread(list_configurations, db=db, limit=limit)
    return ConfigurationListResponse(configurations=items, total=len(items))


@router.get("/{config_id}", response_model=Configuration)
async def configurations_get(config_id: str, db: Any = Depends(get_db), user: Dict[str, Any] = Depends(get_current_user)):
    cfg = await asyncio.to_thread(get_configuration, db=db, config_id=config_id)
    if not cfg:
        raise HTTPException(status_code=404, detail=f"Configuration '{config_id}' not found.")
    return cfg


@router.post("", response_model=Configuration, status_code=201)
async def configurations_create(
    req: ConfigurationFields,
    db: Any = Depends(get_db),
    user: Dict[str, Any] = Depends(get_current_user),
):
    if not (req.company_name and req.company_ruc):
        raise HTTPException(status_code=400, detail="Los campos companyName y companyRuc son requeridos.")
    try:
        return await asyncio.to_thread(save_configuration, db=db, fields=req)
    except ValueError as e:
        status = 409 if "already in use" in str(e) else 400
        raise HTTPException(status_code=status, detail=str(e))


@router.put("/{config_id}", response_model=Configuration)
async def configurations_update(
    config_id: str,
    req: ConfigurationFields,
    db: Any = Depends(get_db),
    user: Dict[str, Any] = Depends(get_current_user),
):
    try:
        return await asyncio.to_thread(save_configuration, db=db, fields=req, config_id=config_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        status = 409 if "already in use" in str(e) else 400
        raise HTTPException(status_code=status, detail=str(e))


@router.delete("/{config_id}")
async def configurations_delete(config_id: str, db: Any = Depends(get_db), user: Dict[str, Any] = Depends(get_current_user)):
    if not await asyncio.to_thread(delete_configuration, db=db, config_id=config_id):
        raise HTTPException(status_code=404, detail=f"Configuration '{config_id}' not found.")
    logger.info("Deleted configuration %s by %s", config_id, user.get("uid"))
    return {"ok": True, "id": config_id}
