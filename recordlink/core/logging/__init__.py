from .logger import (
    clear_query_id,
    get_logger,
    get_query_id,
    redact_secrets,
    set_query_id,
    setup_logging,
)

__all__ = [
    "clear_query_id",
    "get_logger",
    "get_query_id",
    "redact_secrets",
    "set_query_id",
    "setup_logging",
]
