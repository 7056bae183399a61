"""
Exception taxonomy for the federation and synchronization layer.

- StoreError: a store handle failed (transport, timeout, query error).
- SearchStoreError / RelationalStoreError: which store failed.
- FederationError: the last store in a request's fallback chain failed.
- IndexSetupError: the search index could not be created at startup.

Filter translation problems are not exceptions; offending slots are dropped
and logged by the translator.
"""


class StoreError(Exception):
    """Base class for failures raised by a store handle."""


class SearchStoreError(StoreError):
    """The search store could not serve a request."""


class RelationalStoreError(StoreError):
    """The relational store could not serve a request."""


class FederationError(Exception):
    """Raised when a federated read has no store left to try."""


class IndexSetupError(Exception):
    """The search index could not be verified or created."""
