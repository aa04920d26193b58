from __future__ import annotations

import logging
import random
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/consult", tags=["Consult"])

# Share of lookups the simulated registry answers as found.
FOUND_RATE = 0.7


class RucLookupRequest(BaseModel):
    ruc: Optional[str] = None


def get_rng() -> random.Random:
    """Randomness source for the simulated lookup (overridden in tests)."""
    return random.Random()


@router.post("/ruc")
async def consult_ruc(req: RucLookupRequest, rng: random.Random = Depends(get_rng)):
    """Taxpayer lookup by RUC. Simulated until a registry API is wired in."""
    ruc = (req.ruc or "").strip()
    if not ruc:
        raise HTTPException(status_code=400, detail="El RUC es requerido.")

    if rng.random() < FOUND_RATE:
        return {
            "status": "found",
            "name": "EMPRESA DE EJEMPLO S.A.C.",
            "ruc": ruc,
            "address": "AV. SIMULADA 123, LIMA",
            "isTaxpayer": True,
            "message": "Contribuyente encontrado y activo.",
        }

    logger.info("Simulated RUC lookup found no taxpayer for %s", ruc)
    return JSONResponse(
        {"status": "not_found", "message": f"No se encontró contribuyente con RUC {ruc}."},
        status_code=404,
    )
