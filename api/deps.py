import hmac

from fastapi import HTTPException, Request

from config.settings import Settings
from services.config_resolver import ConfigResolver
from services.manager_relay import ManagerRelay
from services.payment_service import PaymentService
from services.storage import Storage


# Injected in lifespan: app.state.<name>
def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(500, f"{name} not initialized")
    return value


def get_settings(request: Request) -> Settings:
    return _state(request, "settings")


def get_storage(request: Request) -> Storage:
    return _state(request, "storage")


def get_resolver(request: Request) -> ConfigResolver:
    return _state(request, "resolver")


def get_relay(request: Request) -> ManagerRelay:
    return _state(request, "relay")


def get_payments(request: Request) -> PaymentService:
    return _state(request, "payments")


# --- AUTH GUARD ---
def require_admin(request: Request):
    # Header token: X-Admin-Token: <token> or cookie 'admin_token'
    hdr = request.headers.get("X-Admin-Token") or request.cookies.get("admin_token")
    tokens = get_settings(request).admin_tokens
    if not tokens:
        # If unset, deny by default
        raise HTTPException(403, "Admin tokens not configured")
    if not hdr or not any(hmac.compare_digest(hdr.encode(), t.encode()) for t in tokens):
        raise HTTPException(403, "Forbidden")
    return True
