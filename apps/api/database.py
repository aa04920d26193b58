import logging
import os
from functools import lru_cache
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore

from .settings import settings

logger = logging.getLogger(__name__)

CONFIGURATIONS = "configurations"
INVOICE_SUBMISSIONS = "invoiceSubmissions"
HKA_RESPONSES = "hkaResponses"


def init_firebase():
    # Initialize Firebase only once
    if firebase_admin._apps:
        return firebase_admin.get_app()

    options = {"projectId": settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
    service_account_path = settings.FIREBASE_SERVICE_ACCOUNT_PATH
    if service_account_path and os.path.exists(service_account_path):
        cred = credentials.Certificate(service_account_path)
    else:
        # App Hosting / Cloud Run expose credentials through the environment.
        logger.info("Service account file not found at %s; using application default credentials", service_account_path)
        cred = credentials.ApplicationDefault()
    return firebase_admin.initialize_app(cred, options)


@lru_cache(maxsize=1)
def _client() -> Any:
    init_firebase()
    return firestore.client()


def get_db() -> Any:
    """FastAPI dependency returning the Firestore client (overridden in tests)."""
    return _client()
