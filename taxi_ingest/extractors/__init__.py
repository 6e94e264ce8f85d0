"""Readers that turn local trip files into batches"""

from .csv_reader import CsvBatchReader, find_input_file, source_filename

__all__ = ['CsvBatchReader', 'find_input_file', 'source_filename']
