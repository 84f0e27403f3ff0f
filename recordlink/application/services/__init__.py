from .connection_service import ConnectionService

__all__ = ["ConnectionService"]
