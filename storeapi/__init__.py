"""Store management API: bearer-token auth and idempotent product catalog."""
from .main import app, create_app
from .version import APP_VERSION

__all__ = ["create_app", "app", "APP_VERSION"]
