"""Report Generator - Summarise what a conversion kept, skipped and lost."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from sheetcanvas.ir import ConversionResult


@dataclass
class ConversionReport:
    """Report on the elements produced and the decisions taken."""

    # Metadata
    input_file: str = ""
    output_file: str = ""
    timestamp: str = ""
    sheets: List[str] = field(default_factory=list)

    # Stats
    total_elements: int = 0
    element_counts: Dict[str, int] = field(default_factory=dict)
    skip_counts: Dict[str, int] = field(default_factory=dict)

    # Merged cells
    merged_text_elements: int = 0

    # Assets
    pictures_placed: int = 0
    absent_pictures: List[Dict] = field(default_factory=list)

    # Problems
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return asdict(self)

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=2)


def generate_report(
    results: Sequence[ConversionResult],
    input_path: Path,
    output_path: Optional[Path] = None,
) -> ConversionReport:
    """Generate a conversion report for one or more sheet results.

    Args:
        results: Results of reconstruct_sheet / convert_workbook.
        input_path: Path to the input XLSX file.
        output_path: Path to the output JSON file.

    Returns:
        ConversionReport with counts and warnings.
    """
    report = ConversionReport(
        input_file=str(input_path),
        output_file=str(output_path) if output_path else "",
        timestamp=datetime.now().isoformat(),
    )

    for result in results:
        report.sheets.append(result.sheet_name)
        report.total_elements += len(result.elements)

        for element in result.elements:
            report.element_counts[element.kind] = report.element_counts.get(element.kind, 0) + 1
            if element.kind == "cellText" and element.merged:
                report.merged_text_elements += 1
            if element.kind == "picture":
                report.pictures_placed += 1

        for record in result.skipped:
            report.skip_counts[record.reason] = report.skip_counts.get(record.reason, 0) + 1

        for record in result.absent:
            report.absent_pictures.append({
                "sheet": result.sheet_name,
                "reason": record.reason,
                "target": record.detail,
            })

        report.errors.extend(f"{result.sheet_name}: {error}" for error in result.errors)
        if not result.ok:
            report.warnings.append(f"Sheet {result.sheet_name!r} ended in stage {result.stage.value}")

    if report.absent_pictures:
        report.warnings.append(f"{len(report.absent_pictures)} picture(s) could not be rendered")

    placement_errors = report.skip_counts.get("placement_error", 0)
    if placement_errors:
        report.warnings.append(f"{placement_errors} element(s) dropped during placement")

    return report


def save_report(report: ConversionReport, output_path: Path) -> None:
    """Save report to JSON file.

    Args:
        report: The conversion report.
        output_path: Path to save the report (should end with .json).
    """
    Path(output_path).write_text(report.to_json(), encoding="utf-8")
