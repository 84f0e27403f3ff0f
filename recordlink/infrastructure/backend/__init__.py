from .base import BackendClient
from .http_client import HttpBackendClient, classify_http_error

__all__ = [
    "BackendClient",
    "HttpBackendClient",
    "classify_http_error",
]
