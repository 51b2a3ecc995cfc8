"""
Harvester - Export Manager

Unified interface for exporting job reports.
Picks the exporter from an explicit format or from the file suffix.
"""

from pathlib import Path
from typing import Any, Type

from harvester.export.base_exporter import BaseExporter
from harvester.export.csv_exporter import CSVExporter
from harvester.export.json_exporter import JSONExporter
from harvester.export.parquet_exporter import ParquetExporter
from harvester.orchestration.models import JobReport
from harvester.shared.constants import ExportFormat
from harvester.shared.exceptions import UnsupportedFormatError
from harvester.shared.logging import LoggerMixin


class ExportManager(LoggerMixin):
    """
    Manages report exports across formats.

    Usage:
        manager = ExportManager(output_dir="output/reports")

        # Format from the suffix
        manager.export(report, "job-42.csv")

        # Explicit format
        manager.export(report, "job-42", ExportFormat.PARQUET)
    """

    _exporters: dict[ExportFormat, Type[BaseExporter]] = {
        ExportFormat.JSON: JSONExporter,
        ExportFormat.CSV: CSVExporter,
        ExportFormat.PARQUET: ParquetExporter,
    }

    def __init__(self, output_dir: str | Path = "output") -> None:
        """
        Initialize export manager.

        Args:
            output_dir: Base directory for exports
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._exporter_instances: dict[ExportFormat, BaseExporter] = {}

    def _get_exporter(self, format: ExportFormat) -> BaseExporter:
        """Get or create exporter instance for format."""
        if format not in self._exporter_instances:
            if format not in self._exporters:
                raise UnsupportedFormatError(str(format), self.supported_names())
            self._exporter_instances[format] = self._exporters[format](self.output_dir)
        return self._exporter_instances[format]

    def resolve_format(self, filename: str, format: ExportFormat | str | None = None) -> ExportFormat:
        """
        Resolve the export format.

        Raises:
            UnsupportedFormatError: If the format or suffix is unknown
        """
        name = format if format is not None else Path(filename).suffix.lstrip(".")
        if isinstance(name, ExportFormat):
            return name
        try:
            return ExportFormat(str(name).lower())
        except ValueError:
            raise UnsupportedFormatError(str(name) or "(none)", self.supported_names()) from None

    def export(
        self,
        report: JobReport,
        filename: str,
        format: ExportFormat | str | None = None,
        **kwargs: Any,
    ) -> Path:
        """
        Export a report to a single format.

        Args:
            report: Report to export
            filename: Filename; its suffix selects the format when none is given
            format: Export format
            **kwargs: Format-specific options

        Returns:
            Path to created file
        """
        format = self.resolve_format(filename, format)
        exporter = self._get_exporter(format)

        self.logger.info("Starting export", format=str(format), filename=filename)

        return exporter.export(report, filename, **kwargs)

    @classmethod
    def get_supported_formats(cls) -> list[ExportFormat]:
        """Get list of supported export formats."""
        return list(cls._exporters.keys())

    @classmethod
    def supported_names(cls) -> list[str]:
        return [str(f) for f in cls._exporters]
