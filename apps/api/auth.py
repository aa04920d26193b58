from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException
from firebase_admin import auth as firebase_auth

from .database import init_firebase
from .settings import settings

logger = logging.getLogger(__name__)

ANONYMOUS_USER: Dict[str, Any] = {"uid": "anonymous", "email": None, "role": "operator"}


async def get_current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    """
    Verifies the Firebase ID token sent by the dashboard.
    Auth is stubbed: with AUTH_ENABLED=false every caller is the anonymous operator.
    """
    if not settings.AUTH_ENABLED:
        return dict(ANONYMOUS_USER)

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = authorization.split(" ", 1)[1].strip()
    try:
        init_firebase()
        decoded_token = firebase_auth.verify_id_token(token)
    except Exception as e:
        logger.warning("Firebase token verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    uid = decoded_token.get("uid")
    if not uid:
        raise HTTPException(status_code=401, detail="Invalid token structure")

    return {
        "uid": uid,
        "email": decoded_token.get("email"),
        "role": decoded_token.get("role") or "operator",
    }
