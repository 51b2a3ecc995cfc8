"""
Harvester - JSON Exporter

Exports the full job report (job state, outcomes, errors, stats) to JSON.
"""

import json
from pathlib import Path
from typing import Any

from harvester.export.base_exporter import BaseExporter
from harvester.orchestration.models import JobReport
from harvester.shared.constants import ExportFormat


class JSONExporter(BaseExporter):
    """
    Export job reports to JSON format.

    Features:
    - Pretty-printed or compact output
    - Full data preservation (no flattening)
    - UTF-8 encoding
    """

    format = ExportFormat.JSON

    def _get_extension(self) -> str:
        return ".json"

    def export(
        self,
        report: JobReport,
        filename: str,
        pretty: bool = True,
        **kwargs: Any,
    ) -> Path:
        """
        Export a report to JSON.

        Args:
            report: Report to export
            filename: Output filename
            pretty: Whether to pretty-print (indent)

        Returns:
            Path to created JSON file
        """
        output_path = self._get_output_path(filename)

        self.logger.info("Exporting to JSON", path=str(output_path))

        data = report.to_dict()

        with open(output_path, "w", encoding="utf-8") as f:
            if pretty:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            else:
                json.dump(data, f, ensure_ascii=False, default=str)

        self.logger.info("JSON export complete", count=len(data["outcomes"]), path=str(output_path))
        return output_path
