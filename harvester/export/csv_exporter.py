"""
Harvester - CSV Exporter

Exports one row per processed item.
"""

import csv
from pathlib import Path
from typing import Any

from harvester.export.base_exporter import BaseExporter
from harvester.orchestration.models import JobReport
from harvester.shared.constants import ExportFormat


class CSVExporter(BaseExporter):
    """
    Export job outcomes to CSV format.

    UTF-8 with BOM for Excel compatibility.
    """

    format = ExportFormat.CSV

    def _get_extension(self) -> str:
        return ".csv"

    def export(
        self,
        report: JobReport,
        filename: str,
        columns: list[str] | None = None,
        include_header: bool = True,
        delimiter: str = ",",
        **kwargs: Any,
    ) -> Path:
        """
        Export outcomes to CSV.

        Args:
            report: Report to export
            filename: Output filename
            columns: Columns to include (default: all)
            include_header: Whether to include header row
            delimiter: Field delimiter

        Returns:
            Path to created CSV file
        """
        output_path = self._get_output_path(filename)
        columns = columns or self.OUTCOME_COLUMNS

        self.logger.info("Exporting to CSV", path=str(output_path))

        rows = self._outcome_rows(report)

        with open(output_path, "w", newline="", encoding="utf-8-sig") as f:
            writer = csv.DictWriter(
                f,
                fieldnames=columns,
                delimiter=delimiter,
                extrasaction="ignore",
            )

            if include_header:
                writer.writeheader()

            for row in rows:
                writer.writerow(row)

        self.logger.info("CSV export complete", count=len(rows), path=str(output_path))
        return output_path
