"""
NYC Taxi Idempotent Batch Ingestion

Loads monthly NYC TLC trip files into one deduplicated table per taxi
category. Rows are fingerprinted by their natural key, so re-running a
file or loading overlapping files never duplicates a trip.
"""

__version__ = "1.1.0"
__author__ = "Data Engineering Team"
