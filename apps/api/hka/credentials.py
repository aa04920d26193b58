from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from ..database import CONFIGURATIONS
from ..settings import settings
from .errors import HkaError
from .models import Emisor, HkaCredentials, HkaEnv

logger = logging.getLogger(__name__)

# HkaCredentials attribute -> (configuration field prefix/suffix, environment variable prefix)
_CONFIG_FIELDS = {"usuario": "User", "clave": "Password", "api_key": "ApiKey"}
_ENV_VARS = {"usuario": "HKA_USER", "clave": "HKA_PASS", "api_key": "HKA_API_KEY"}


def parse_env(value: Any) -> HkaEnv:
    raw = str(value or settings.HKA_DEFAULT_ENV or "").strip().lower()
    try:
        return HkaEnv(raw)
    except ValueError:
        raise HkaError("El ambiente debe ser 'demo' o 'prod'.", status=400)


def config_field(env: HkaEnv, attr: str) -> str:
    # demoUser, prodPassword, demoApiKey, ...
    return f"{env.value}{_CONFIG_FIELDS[attr]}"


def load_configuration(db: Any, config_id: str) -> Dict[str, Any]:
    snap = db.collection(CONFIGURATIONS).document(config_id).get()
    if not snap.exists:
        raise HkaError(f"Configuration '{config_id}' not found.", status=404)
    data = snap.to_dict() or {}
    data.setdefault("id", snap.id)
    return data


def _emisor_from_config(config: Dict[str, Any]) -> Emisor:
    return Emisor(
        ruc=str(config.get("companyRuc") or "").strip(),
        dv=str(config.get("companyDv") or "00").strip(),
        name=(str(config.get("companyName") or "").strip() or None),
        address=(str(config.get("companyAddress") or "").strip() or None),
    )


def _emisor_from_settings() -> Emisor:
    return Emisor(
        ruc=settings.HKA_EMISOR_RUC,
        dv=settings.HKA_EMISOR_DV,
        name=settings.HKA_EMISOR_NAME,
        address=settings.HKA_EMISOR_ADDRESS,
    )


def resolve_credentials(
    *,
    db: Any,
    config_id: Optional[str],
    env: HkaEnv,
    required: Iterable[str],
) -> HkaCredentials:
    """Credentials for one call.

    With a config_id the per-client configuration document is used; otherwise
    the static HKA_* environment variables. `required` names the
    HkaCredentials attributes the chosen transport needs.
    """
    required = tuple(required)
    if config_id:
        config = load_configuration(db, config_id)
        values = {attr: str(config.get(config_field(env, attr)) or "").strip() for attr in _CONFIG_FIELDS}
        missing = [config_field(env, attr) for attr in required if not values[attr]]
        if missing:
            logger.error("Configuration %s is missing %s for %s", config_id, ", ".join(missing), env.value)
            raise HkaError(
                f"HKA configuration '{config_id}' is incomplete for the '{env.value}' environment.",
                status=500,
                body={"message": f"HKA configuration '{config_id}' is incomplete for the '{env.value}' environment.", "missing": missing},
            )
        return HkaCredentials(env=env, config_id=config_id, emisor=_emisor_from_config(config), **values)

    suffix = env.value.upper()
    values = {attr: str(getattr(settings, f"{prefix}_{suffix}", "") or "").strip() for attr, prefix in _ENV_VARS.items()}
    missing = [f"{_ENV_VARS[attr]}_{suffix}" for attr in required if not values[attr]]
    if missing:
        raise HkaError(
            f"Configuration error: missing environment variables for '{env.value}': {', '.join(missing)}.",
            status=500,
        )
    return HkaCredentials(env=env, config_id=None, emisor=_emisor_from_settings(), **values)


def find_configuration_by_identifier(db: Any, identifier: str) -> Optional[Dict[str, Any]]:
    snaps = list(db.collection(CONFIGURATIONS).where("webhookIdentifier", "==", identifier).limit(1).stream())
    if not snaps:
        return None
    data = snaps[0].to_dict() or {}
    data["id"] = snaps[0].id
    return data
