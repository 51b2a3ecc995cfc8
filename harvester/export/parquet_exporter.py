"""
Harvester - Parquet Exporter

Exports job outcomes to Apache Parquet for analysis of large runs.
Uses PyArrow for schema enforcement and compression.
"""

from pathlib import Path
from typing import Any

import pyarrow as pa
import pyarrow.parquet as pq

from harvester.export.base_exporter import BaseExporter
from harvester.orchestration.models import JobReport
from harvester.shared.constants import ExportFormat


class ParquetExporter(BaseExporter):
    """
    Export job outcomes to Parquet format.

    Features:
    - Schema enforcement with PyArrow
    - Snappy compression by default
    """

    format = ExportFormat.PARQUET

    SCHEMA = pa.schema([
        ("job_id", pa.string()),
        ("item_id", pa.string()),
        ("url", pa.string()),
        ("label", pa.string()),
        ("success", pa.bool_()),
        ("attempts", pa.int32()),
        ("is_new", pa.bool_()),
        ("attachment_path", pa.string()),
        ("error_code", pa.string()),
        ("error_message", pa.string()),
        ("timestamp", pa.string()),
    ])

    def _get_extension(self) -> str:
        return ".parquet"

    def export(
        self,
        report: JobReport,
        filename: str,
        compression: str = "snappy",
        row_group_size: int = 10000,
        **kwargs: Any,
    ) -> Path:
        """
        Export outcomes to Parquet.

        Args:
            report: Report to export
            filename: Output filename
            compression: Compression codec (snappy, gzip, lz4, zstd, none)
            row_group_size: Number of rows per row group

        Returns:
            Path to created Parquet file
        """
        output_path = self._get_output_path(filename)

        self.logger.info("Exporting to Parquet", path=str(output_path), compression=compression)

        rows = self._outcome_rows(report)

        columns = {}
        for field in self.SCHEMA:
            col_values = []
            for row in rows:
                value = row.get(field.name)
                if value is None:
                    pass
                elif field.type == pa.int32():
                    value = int(value)
                elif field.type == pa.bool_():
                    value = bool(value)
                else:
                    value = str(value)
                col_values.append(value)
            columns[field.name] = col_values

        table = pa.table(columns, schema=self.SCHEMA)

        pq.write_table(
            table,
            output_path,
            compression=compression,
            row_group_size=row_group_size,
        )

        self.logger.info(
            "Parquet export complete",
            count=len(rows),
            path=str(output_path),
            size_bytes=output_path.stat().st_size,
        )
        return output_path
