"""
Database integration layer for teacher scoring.

Provides the read interfaces for platform data, the score record store with
in-memory and PostgreSQL implementations, and async PostgreSQL pooling.
"""

from .connection import (
    PoolConfig,
    DatabasePool,
    DatabaseConnectionError,
    get_database_pool,
    close_database_pool,
    create_pool_config,
)

from .sources import (
    MetricSource,
    EngagementSource,
    NeutralEngagementSource,
    InMemoryMetricSource,
    InMemoryEngagementSource,
)

from .store import ScoreRecordStore, InMemoryScoreStore
from .queries import PostgresMetricSource
from .postgres_store import PostgresScoreStore

__all__ = [
    # Connection
    'PoolConfig',
    'DatabasePool',
    'DatabaseConnectionError',
    'get_database_pool',
    'close_database_pool',
    'create_pool_config',

    # Data sources
    'MetricSource',
    'EngagementSource',
    'NeutralEngagementSource',
    'InMemoryMetricSource',
    'InMemoryEngagementSource',
    'PostgresMetricSource',

    # Score storage
    'ScoreRecordStore',
    'InMemoryScoreStore',
    'PostgresScoreStore',
]
