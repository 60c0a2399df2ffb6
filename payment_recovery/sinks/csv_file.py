"""CSV file sink for exporting flat records."""

import csv
import logging
from pathlib import Path
from typing import Any

from payment_recovery.exceptions import SinkError
from payment_recovery.sinks.serialization import serialize_value

logger = logging.getLogger(__name__)


class CsvFileSink:
    """Write flat dict rows to CSV files, one file per name."""

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._counts: dict[str, int] = {}

    def write(self, name: str, rows: list[dict[str, Any]]) -> Path:
        """Write rows to ``<output_dir>/<name>.csv``; columns follow the first row."""
        file_path = self.output_dir / f"{name}.csv"
        columns = list(rows[0].keys()) if rows else []

        try:
            with open(file_path, "w", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
                writer.writeheader()
                for row in rows:
                    writer.writerow(
                        {
                            k: "" if v is None else serialize_value(v)
                            for k, v in row.items()
                        }
                    )
        except OSError as e:
            raise SinkError(f"Cannot write {file_path}: {e}") from e

        self._counts[name] = len(rows)
        return file_path

    def close(self) -> None:
        for name, count in self._counts.items():
            logger.info("%s: %d rows written to %s", name, count, self.output_dir)
