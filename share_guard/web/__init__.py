from .status_api import StatusServer, create_app

__all__ = ["StatusServer", "create_app"]
