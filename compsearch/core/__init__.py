"""
Core infrastructure package for the compensation search service.

Provides:
- Configuration management via pydantic-settings (config)
- Exception taxonomy shared by stores and services (exceptions)
- Relational store handle over an asyncpg pool (database)
- Search store handle over AsyncElasticsearch (search)

FastAPI dependencies live in compsearch.core.dependencies and are imported
from there directly, since they depend on the services package.

Usage Examples:
    from compsearch.core import get_settings, create_relational_store, create_search_store

    settings = get_settings()
    relational = await create_relational_store(settings)
    search = create_search_store(settings)
"""

# =============================================================================
# Re-exports from compsearch.core.config
# =============================================================================
from compsearch.core.config import Settings, get_settings

# =============================================================================
# Re-exports from compsearch.core.exceptions
# =============================================================================
from compsearch.core.exceptions import (
    StoreError,
    SearchStoreError,
    RelationalStoreError,
    FederationError,
    IndexSetupError,
)

# =============================================================================
# Re-exports from compsearch.core.database / compsearch.core.search
# =============================================================================
from compsearch.core.database import RelationalStore, create_relational_store, connect_listener
from compsearch.core.search import SearchStore, create_search_store

__all__ = [
    # Configuration
    'Settings',
    'get_settings',
    # Exceptions
    'StoreError',
    'SearchStoreError',
    'RelationalStoreError',
    'FederationError',
    'IndexSetupError',
    # Store handles
    'RelationalStore',
    'create_relational_store',
    'connect_listener',
    'SearchStore',
    'create_search_store',
]
