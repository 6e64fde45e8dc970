import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from pymongo.errors import PyMongoError

from auth import extract_token, oauth2_scheme, peek_role
from database import create_document, get_db, require_db, utcnow
from schemas import Settings, SettingsUpdate

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "INR": "₹"}
DEFAULT_CURRENCY_SYMBOL = "₹"

# reachable while the shop is in maintenance mode
MAINTENANCE_EXEMPT_PATHS = {"/", "/test", "/api/settings", "/api/auth/login", "/api/auth/me"}
MAINTENANCE_EXEMPT_PREFIXES = ("/api/admin",)


def load_settings(database) -> Settings:
    """Return the settings singleton, creating it with defaults on first read."""
    doc = database["settings"].find_one()
    if doc is None:
        create_document(database, "settings", Settings())
        doc = database["settings"].find_one()
    return Settings(**doc)


def get_site_settings(database=Depends(require_db)) -> Settings:
    return load_settings(database)


def currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get(currency, DEFAULT_CURRENCY_SYMBOL)


def update_settings(database, changes: SettingsUpdate) -> Settings:
    load_settings(database)
    update = changes.model_dump(exclude_none=True)
    if "default_currency" in update:
        update["currency_symbol"] = currency_symbol(update["default_currency"])
    update["updated_at"] = utcnow()
    database["settings"].update_one({}, {"$set": update})
    return load_settings(database)


def is_maintenance_exempt(path: str) -> bool:
    return path in MAINTENANCE_EXEMPT_PATHS or path.startswith(MAINTENANCE_EXEMPT_PREFIXES)


def maintenance_gate(request: Request, bearer: Optional[str] = Depends(oauth2_scheme), database=Depends(get_db)):
    if database is None or is_maintenance_exempt(request.url.path):
        return
    try:
        settings = load_settings(database)
    except PyMongoError:
        logger.exception("Maintenance check failed, letting request through")
        return
    if not settings.maintenance_mode:
        return

    token, _ = extract_token(request, bearer)
    if peek_role(token) == "admin":
        return
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=settings.maintenance_message or "Site is under maintenance. Please check back later.",
    )
