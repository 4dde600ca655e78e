"""JSON report output."""

from __future__ import annotations

import json
import time
from pathlib import Path

from pydantic import BaseModel


def generate_json_report(report: BaseModel, output_path: Path, kind: str = "") -> None:
    """Write a machine-readable JSON report for any sync or analysis result."""
    data = report.model_dump(mode="json")
    if kind:
        data["report_type"] = kind
    data["generated_at"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(data, f, indent=2, default=str)
