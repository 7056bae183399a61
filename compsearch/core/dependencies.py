"""
FastAPI dependency injection for the compensation search API.

The store handles, the query router and the sync controller are built once in
the application lifespan and stored on app.state. These dependencies hand
them to endpoint handlers, so handlers never reach for module-level globals
and tests can swap any of them through app.dependency_overrides.

Key Dependencies Provided:
- get_settings_dependency / SettingsDep: cached Settings
- get_query_router / QueryRouterDep: FallbackQueryRouter for federated reads
- get_sync_controller / SyncControllerDep: SyncController for sync and health

Usage Examples:
    @router.get("/stats")
    async def get_stats(router: QueryRouterDep) -> AggregateResult:
        return await router.aggregate()

    # In tests
    app.dependency_overrides[get_query_router] = lambda: fake_router
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from compsearch.core.config import Settings, get_settings
from compsearch.services.federation import FallbackQueryRouter
from compsearch.services.sync_control import SyncController


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the cached Settings instance.

    Thin wrapper around get_settings() so tests can override it:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


# =============================================================================
# Component Dependencies
# =============================================================================

def get_query_router(request: Request) -> FallbackQueryRouter:
    """
    Return the FallbackQueryRouter built during application startup.

    Raises:
        HTTPException: 503 if startup did not complete (stores unavailable).
    """
    router = getattr(request.app.state, 'query_router', None)
    if router is None:
        raise HTTPException(status_code=503, detail="Query router not initialized")
    return router


def get_sync_controller(request: Request) -> SyncController:
    """
    Return the SyncController built during application startup.

    Raises:
        HTTPException: 503 if startup did not complete (stores unavailable).
    """
    controller = getattr(request.app.state, 'sync_controller', None)
    if controller is None:
        raise HTTPException(status_code=503, detail="Sync controller not initialized")
    return controller


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

QueryRouterDep = Annotated[FallbackQueryRouter, Depends(get_query_router)]

SyncControllerDep = Annotated[SyncController, Depends(get_sync_controller)]
