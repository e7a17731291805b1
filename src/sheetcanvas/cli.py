"""Spreadsheet to canvas elements - CLI Entry Point."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from sheetcanvas.config import load_settings
from sheetcanvas.exceptions import SheetCanvasError
from sheetcanvas.reconstruct import reconstruct_sheet
from sheetcanvas.report import generate_report, save_report
from sheetcanvas.text_fit import MonospaceTextMeasurer, PillowTextMeasurer
from sheetcanvas.xlsx_parser import SpreadsheetPackage


@click.command()
@click.argument("input_xlsx", type=click.Path(exists=True, path_type=Path))
@click.argument("output_json", type=click.Path(path_type=Path), required=False)
@click.option("--sheet", "sheet_name", help="Sheet to convert (default: first sheet)")
@click.option("--all-sheets", is_flag=True, help="Convert every sheet in workbook order")
@click.option("--list-sheets", is_flag=True, help="Print the sheet names and exit")
@click.option("--report", "report_path", type=click.Path(path_type=Path), help="Generate report.json")
@click.option("--assets-dir", type=click.Path(path_type=Path), help="Extract media files to this directory")
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path), help="YAML settings file")
@click.option("--monospace", is_flag=True, help="Measure text with the deterministic monospace measurer")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(input_xlsx: Path, output_json: Optional[Path], sheet_name: Optional[str] = None,
        all_sheets: bool = False, list_sheets: bool = False, report_path: Path = None,
        assets_dir: Path = None, config_path: Path = None, monospace: bool = False,
        verbose: bool = False):
    """Reconstruct the visual layout of a spreadsheet as canvas elements.

    INPUT_XLSX: Path to the input .xlsx file.
    OUTPUT_JSON: Path where the element list will be written.
    """
    try:
        settings = load_settings(config_path)
    except (OSError, ValueError) as e:
        click.echo(f"Error loading settings: {e}", err=True)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        package = SpreadsheetPackage.open(input_xlsx)
        names = package.sheet_names()
    except SheetCanvasError as e:
        click.echo(f"Error reading XLSX: {e}", err=True)
        sys.exit(1)

    if list_sheets:
        for name in names:
            click.echo(name)
        package.close()
        return

    if output_json is None:
        click.echo("Error: OUTPUT_JSON is required unless --list-sheets is given.", err=True)
        sys.exit(1)
    if sheet_name and all_sheets:
        click.echo("Error: --sheet and --all-sheets are mutually exclusive.", err=True)
        sys.exit(1)

    if all_sheets:
        targets = names
    elif sheet_name:
        targets = [sheet_name]
    else:
        targets = names[:1]

    measurer = MonospaceTextMeasurer() if monospace else PillowTextMeasurer(settings.font_path)

    results = []
    for name in targets:
        if verbose:
            click.echo(f"Reconstructing: {name}")
        try:
            result = reconstruct_sheet(package, name, settings=settings, measurer=measurer)
        except SheetCanvasError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        results.append(result)
        if verbose:
            click.echo(f"  {len(result.elements)} elements, {len(result.skipped)} skipped, stage {result.stage.value}")
            for error in result.errors:
                click.echo(f"  [Error] {error}")

    payload = {
        "source": str(input_xlsx),
        "sheets": [result.to_dict() for result in results],
    }
    output_json.parent.mkdir(parents=True, exist_ok=True)
    output_json.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    if verbose:
        click.echo(f"Written to: {output_json}")

    if assets_dir:
        media = package.extract_media(assets_dir)
        if verbose:
            click.echo(f"Extracted {len(media)} media file(s) to {assets_dir}")

    if report_path:
        report = generate_report(results, input_xlsx, output_json)
        save_report(report, report_path)
        if verbose:
            click.echo(f"Report saved to: {report_path}")
            click.echo(f"  Elements: {report.element_counts}")
            click.echo(f"  Skipped: {report.skip_counts}")

    package.close()
    click.echo(f"✓ Converted {input_xlsx.name} → {output_json.name}")


if __name__ == "__main__":
    cli()
