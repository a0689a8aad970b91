"""
classpy JSON Report
====================

Serialises an :class:`~classpy.core.models.InspectionResult` and a
snapshot of its component tree to JSON for machine consumption.

Usage::

    generator = ReportGenerator()
    generator.generate_json(result, "Foo.json", max_depth=None)
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from classpy.core.models import ComponentView, InspectionResult

REPORT_TYPE: str = "classpy_inspection"
REPORT_VERSION: str = "1.0.0"


class ReportGenerator:
    """Build JSON reports from inspection results."""

    def to_dict(
        self, result: InspectionResult, *, max_depth: Optional[int] = None
    ) -> dict[str, Any]:
        """Report document as plain JSON-compatible data.

        Args:
            result: Inspection outcome.
            max_depth: Tree levels to include; ``None`` exports everything.
        """
        tree = None
        if result.root is not None:
            tree = ComponentView.from_component(result.root, max_depth).model_dump(mode="json")
        return {
            "report_type": REPORT_TYPE,
            "version": REPORT_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "inspection": result.model_dump(mode="json"),
            "tree": tree,
        }

    def to_json(
        self, result: InspectionResult, *, max_depth: Optional[int] = None
    ) -> str:
        return json.dumps(
            self.to_dict(result, max_depth=max_depth),
            indent=2, ensure_ascii=False, default=str,
        )

    def generate_json(
        self,
        result: InspectionResult,
        output_path: str,
        *,
        max_depth: Optional[int] = None,
    ) -> str:
        """Write the JSON report to *output_path*.

        Returns:
            The absolute path of the generated report.
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(result, max_depth=max_depth), encoding="utf-8")
        return str(path.resolve())
