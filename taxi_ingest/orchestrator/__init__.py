"""Pipeline orchestration"""

from .ingestion_engine import IngestionEngine
from .ingestion_pipeline import IngestionPipeline, IngestionResult

__all__ = ['IngestionEngine', 'IngestionPipeline', 'IngestionResult']
