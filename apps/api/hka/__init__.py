from .client import HkaClient, get_hka_client
from .errors import HkaError, InvoicePayloadError
from .router import router

__all__ = ["HkaClient", "HkaError", "InvoicePayloadError", "get_hka_client", "router"]
