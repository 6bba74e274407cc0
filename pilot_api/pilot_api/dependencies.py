"""FastAPI dependency injection for settings, engine services, and identity."""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request
from pilot_engine.config import Settings
from pilot_engine.errors import AccessDeniedError
from pilot_engine.services import PilotServices, close_services, open_services
from pilot_engine.state.store import validate_tenant_id

from pilot_api.config import APISettings, load_api_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Engine services
# ---------------------------------------------------------------------------

_services: PilotServices | None = None


async def init_services(settings: Settings | None = None) -> PilotServices:
    """Open the record store and cache the global :class:`PilotServices`."""
    global _services  # noqa: PLW0603
    _services = await open_services(settings)
    return _services


async def dispose_services() -> None:
    """Stop background work and release the store (call during shutdown)."""
    global _services  # noqa: PLW0603
    if _services is not None:
        await close_services(_services)
        _services = None


def get_services() -> PilotServices:
    """Return the cached :class:`PilotServices` singleton."""
    if _services is None:
        raise RuntimeError(
            "Engine services have not been initialised. Ensure init_services() is called during application startup."
        )
    return _services


ServicesDep = Annotated[PilotServices, Depends(get_services)]

# ---------------------------------------------------------------------------
# Tenant identity
# ---------------------------------------------------------------------------


def get_tenant_id(
    request: Request,
    x_tenant_id: Annotated[str | None, Header(alias="X-Tenant-ID")] = None,
) -> str:
    """Read the tenant id asserted by the upstream authentication layer."""
    if not x_tenant_id:
        raise HTTPException(status_code=401, detail="X-Tenant-ID header required")
    try:
        validate_tenant_id(x_tenant_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed X-Tenant-ID header") from None
    request.state.tenant_id = x_tenant_id
    return x_tenant_id


async def require_tenant_access(
    services: ServicesDep,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
) -> str:
    """Evaluate the access predicate before any tenant-scoped work."""
    if not await services.trials.is_access_enabled(tenant_id):
        raise AccessDeniedError(tenant_id)
    return tenant_id


TenantDep = Annotated[str, Depends(require_tenant_access)]

# ---------------------------------------------------------------------------
# Operator access
# ---------------------------------------------------------------------------


def require_admin(
    settings: SettingsDep,
    x_admin_token: Annotated[str | None, Header(alias="X-Admin-Token")] = None,
) -> None:
    """Allow the request only with the configured admin token (constant-time compare)."""
    expected = settings.admin_token.get_secret_value()
    if not expected or x_admin_token is None:
        raise HTTPException(status_code=403, detail="Admin token required")
    if not hmac.compare_digest(x_admin_token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Rejected admin request with invalid token")
        raise HTTPException(status_code=403, detail="Admin token required")
