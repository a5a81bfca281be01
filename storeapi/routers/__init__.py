"""API routers."""
from . import auth, products

__all__ = ["auth", "products"]
