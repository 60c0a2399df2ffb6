"""JSON file sink for exporting records."""

import json
import logging
from pathlib import Path
from typing import Any

from payment_recovery.exceptions import SinkError
from payment_recovery.sinks.serialization import to_dict

logger = logging.getLogger(__name__)


class JsonFileSink:
    """Write records to JSON files, one file per name."""

    def __init__(self, output_dir: str | Path, pretty: bool = False) -> None:
        """Initialize JSON file sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory to write JSON files.
        pretty : bool
            Pretty-print JSON output.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.pretty = pretty
        self._counts: dict[str, int] = {}

    def write(self, name: str, records: list[Any]) -> Path:
        """Write records to ``<output_dir>/<name>.json``."""
        file_path = self.output_dir / f"{name}.json"
        data = [to_dict(record) for record in records]

        try:
            with open(file_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2 if self.pretty else None, ensure_ascii=False, default=str)
        except OSError as e:
            raise SinkError(f"Cannot write {file_path}: {e}") from e

        self._counts[name] = len(records)
        return file_path

    def close(self) -> None:
        """Log a summary of what was written."""
        for name, count in self._counts.items():
            logger.info("%s: %d records written to %s", name, count, self.output_dir)
