"""
HTTP API — FastAPI routes over CheckoutService.

    from storefront.api import create_app

    app = create_app(service)
"""

from storefront.api._app import SIGNATURE_HEADER, create_app, app_from_env, get_service, get_user_id
from storefront.api import _schemas as schemas

__all__ = ("SIGNATURE_HEADER", "create_app", "app_from_env", "get_service", "get_user_id", "schemas")
