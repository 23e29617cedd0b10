"""
Stalker Report Generator
=========================

Writes StalkerKit results (connection checks, discovery runs, batch
audits, content listings) to JSON files with a small metadata header.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel

TOOL_NAME = "StalkerKit"
FORMAT_VERSION = "1.0"


class _StalkerJSONEncoder(json.JSONEncoder):
    """JSON encoder for dates, enums and pydantic models."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, BaseModel):
            return obj.model_dump()
        return super().default(obj)


class StalkerReportGenerator:
    """Serialise results to JSON report files.

    Usage::

        gen = StalkerReportGenerator(version="1.0.0")
        gen.generate_json(discovery_result, "reports/discovery.json")
    """

    def __init__(self, version: str = "1.0.0") -> None:
        self.version = version

    def _payload(self, result: Any) -> Any:
        if isinstance(result, BaseModel):
            return result.model_dump()
        if isinstance(result, dict):
            return result
        if isinstance(result, Sequence) and not isinstance(result, (str, bytes)):
            return [self._payload(item) for item in result]
        return {"result": str(result)}

    def generate_json(self, result: Any, output_path: str | Path) -> Path:
        """Write *result* under a ``report`` metadata header.

        Args:
            result:      A pydantic model, a dict, or a list of either.
            output_path: Destination file; parent directories are created.

        Returns:
            Path to the written file.
        """
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)

        report_data = {
            "report": {
                "tool": TOOL_NAME,
                "version": self.version,
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "format_version": FORMAT_VERSION,
            },
            "data": self._payload(result),
        }

        with open(output, "w", encoding="utf-8") as fh:
            json.dump(report_data, fh, indent=2, cls=_StalkerJSONEncoder, ensure_ascii=False)

        return output
