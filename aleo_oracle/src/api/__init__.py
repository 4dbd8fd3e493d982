from .app import create_app
from .dependencies import ApiSettings

__all__ = ["create_app", "ApiSettings"]
