"""
API routers for the compensation search service.

- compensation: federated listings, single records and statistics
- sync: bulk synchronization trigger and change-capture status
"""

from compsearch.api.compensation import router as compensation_router
from compsearch.api.sync import router as sync_router

__all__ = [
    'compensation_router',
    'sync_router',
]
