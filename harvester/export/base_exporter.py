"""
Harvester - Base Exporter

Abstract base class for all report export formats.
Provides common functionality and interface.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from harvester.orchestration.models import JobReport
from harvester.shared.constants import ExportFormat
from harvester.shared.logging import LoggerMixin


class BaseExporter(ABC, LoggerMixin):
    """
    Abstract base class for job report exporters.

    Subclasses must implement:
    - export(): Write a report to a file
    - _get_extension(): Return file extension
    """

    format: ExportFormat

    # Columns of the per-outcome table used by tabular formats
    OUTCOME_COLUMNS = [
        "job_id",
        "item_id",
        "url",
        "label",
        "success",
        "attempts",
        "is_new",
        "attachment_path",
        "error_code",
        "error_message",
        "timestamp",
    ]

    def __init__(self, output_dir: str | Path = "output") -> None:
        """
        Initialize exporter.

        Args:
            output_dir: Directory for output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _get_output_path(self, filename: str) -> Path:
        """Get full output path for a file."""
        ext = self._get_extension()
        if not filename.endswith(ext):
            filename = f"{filename}{ext}"
        return self.output_dir / filename

    @abstractmethod
    def _get_extension(self) -> str:
        """Get file extension for this format."""
        ...

    @abstractmethod
    def export(self, report: JobReport, filename: str, **kwargs: Any) -> Path:
        """
        Export a job report to a file.

        Args:
            report: Report to export
            filename: Output filename (extension optional)
            **kwargs: Format-specific options

        Returns:
            Path to the created file
        """
        ...

    def _outcome_rows(self, report: JobReport) -> list[dict[str, Any]]:
        """Flatten outcomes to single-level rows for tabular formats."""
        job_id = report.snapshot.job_id
        rows = []
        for outcome in report.snapshot.outcomes:
            row = outcome.to_dict()
            row["job_id"] = job_id
            rows.append(row)
        return rows
