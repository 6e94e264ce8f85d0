"""Staging areas and canonical stores"""

from .canonical_store import CanonicalStore, InMemoryCanonicalStore
from .stage_manager import LocalStagingArea, S3StagingArea, StagingArea, staging_key
from .snowflake_loader import SnowflakeCanonicalStore

__all__ = [
    'CanonicalStore', 'InMemoryCanonicalStore', 'SnowflakeCanonicalStore',
    'StagingArea', 'LocalStagingArea', 'S3StagingArea', 'staging_key'
]
