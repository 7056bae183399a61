"""
Compensation Search Package.

Query federation and synchronization between PostgreSQL (source of truth)
and Elasticsearch (derived search/analytics store) for compensation data.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, exceptions, and store handles
    - models: Pydantic schemas and enums
    - services: Transformer, translator, fallback router, bulk sync, change capture
    - jobs: Long-running streamer process
    - sql: Parameterized SQL queries and trigger DDL
"""

__version__ = "1.0.0"
