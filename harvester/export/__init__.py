"""
Harvester - Export Module

Writes job reports (outcomes, errors, timing stats) for audit.
"""

from harvester.export.base_exporter import BaseExporter
from harvester.export.csv_exporter import CSVExporter
from harvester.export.export_manager import ExportManager
from harvester.export.json_exporter import JSONExporter
from harvester.export.parquet_exporter import ParquetExporter

__all__ = [
    "BaseExporter",
    "CSVExporter",
    "ParquetExporter",
    "JSONExporter",
    "ExportManager",
]
