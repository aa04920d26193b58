from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
import os
from pathlib import Path
import dotenv

# Always load apps/.env (relative to this file), regardless of where the process is started.
_APPS_DIR = Path(__file__).resolve().parents[1]
dotenv.load_dotenv(dotenv_path=_APPS_DIR / ".env", override=False)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


class Settings(BaseSettings):
    APP_HOST: str = Field(default=os.getenv("APP_HOST", "0.0.0.0"))
    APP_PORT: int = Field(default=int(os.getenv("APP_PORT", "8000")))
    FRONTEND_BASE_URL: str = Field(default=os.getenv("FRONTEND_BASE_URL", "http://localhost:9002"))
    # Comma-separated extra origins for the dashboard.
    CORS_ORIGINS: str = Field(default=os.getenv("CORS_ORIGINS", ""))

    # Firebase / Firestore
    FIREBASE_PROJECT_ID: str = Field(default=os.getenv("FIREBASE_PROJECT_ID", ""))
    # If the file does not exist, application default credentials are used.
    FIREBASE_SERVICE_ACCOUNT_PATH: str = Field(
        default=os.getenv("FIREBASE_SERVICE_ACCOUNT_PATH", str(_APPS_DIR / "serviceAccountKey.json"))
    )

    # Dashboard auth is stubbed: when false every request runs as an anonymous operator.
    AUTH_ENABLED: bool = Field(default=_env_bool("AUTH_ENABLED"))

    # ---------------------------------------------------------------------
    # The Factory HKA
    #
    # Notes:
    # - HKA_TRANSPORT selects how documents are sent: soap | rest | mock.
    # - Folios are only exposed by the REST API, so they always need an api key.
    # - Static credentials below are the fallback when no configId is given.
    # ---------------------------------------------------------------------
    HKA_TRANSPORT: str = Field(default=os.getenv("HKA_TRANSPORT", "soap"))
    HKA_DEFAULT_ENV: str = Field(default=os.getenv("HKA_DEFAULT_ENV", "demo"))

    HKA_WSDL_URL_DEMO: str = Field(
        default=os.getenv(
            "HKA_WSDL_URL_DEMO", "https://demoemision.thefactoryhka.com.pa/ws/obj/v1.0/Service.svc?wsdl"
        )
    )
    HKA_WSDL_URL_PROD: str = Field(
        default=os.getenv("HKA_WSDL_URL_PROD", "https://emision.thefactoryhka.com.pa/ws/obj/v1.0/Service.svc?wsdl")
    )
    HKA_REST_BASE_URL_DEMO: str = Field(default=os.getenv("HKA_REST_BASE_URL_DEMO", "https://api.hka.demo.example"))
    HKA_REST_BASE_URL_PROD: str = Field(
        default=os.getenv("HKA_REST_BASE_URL_PROD", "https://api.hka.production.example")
    )

    HKA_USER_DEMO: str = Field(default=os.getenv("HKA_USER_DEMO", ""))
    HKA_PASS_DEMO: str = Field(default=os.getenv("HKA_PASS_DEMO", ""))
    HKA_API_KEY_DEMO: str = Field(default=os.getenv("HKA_API_KEY_DEMO", ""))
    HKA_USER_PROD: str = Field(default=os.getenv("HKA_USER_PROD", ""))
    HKA_PASS_PROD: str = Field(default=os.getenv("HKA_PASS_PROD", ""))
    HKA_API_KEY_PROD: str = Field(default=os.getenv("HKA_API_KEY_PROD", ""))

    # Issuer used when documents are stamped with the static credentials.
    HKA_EMISOR_RUC: str = Field(default=os.getenv("HKA_EMISOR_RUC", ""))
    HKA_EMISOR_DV: str = Field(default=os.getenv("HKA_EMISOR_DV", "00"))
    HKA_EMISOR_NAME: str = Field(default=os.getenv("HKA_EMISOR_NAME", "EMPRESA EMISORA SA"))
    HKA_EMISOR_ADDRESS: str = Field(default=os.getenv("HKA_EMISOR_ADDRESS", "CIUDAD DE PANAMA"))

    HKA_TIMEOUT_SECONDS: float = Field(default=float(os.getenv("HKA_TIMEOUT_SECONDS", "30")))
    HKA_MAX_RETRIES: int = Field(default=int(os.getenv("HKA_MAX_RETRIES", "2")))
    # HKA sessions live 10 minutes; refresh one minute early.
    HKA_SESSION_TTL_SECONDS: int = Field(default=int(os.getenv("HKA_SESSION_TTL_SECONDS", "540")))

    # If set, webhook endpoints require header: X-Webhook-Secret
    HKA_WEBHOOK_SECRET: str = Field(default=os.getenv("HKA_WEBHOOK_SECRET", ""))

    # Pending submissions older than this are considered stuck.
    STALE_SUBMISSION_MINUTES: int = Field(default=int(os.getenv("STALE_SUBMISSION_MINUTES", "30")))

    # Ignore extra fields like NEXT_PUBLIC_*
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
