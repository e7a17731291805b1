"""Spreadsheet layout reconstruction - xlsx sheets as positioned canvas elements."""

from sheetcanvas.config import Settings, load_settings
from sheetcanvas.exceptions import PackageError, SheetCanvasError, SheetNotFoundError
from sheetcanvas.ir import ConversionResult, Rect, SkipRecord, Stage, element_to_dict
from sheetcanvas.reconstruct import SupplementalText, convert_workbook, reconstruct_sheet
from sheetcanvas.text_fit import MonospaceTextMeasurer, PillowTextMeasurer, TextLayout
from sheetcanvas.xlsx_parser import SpreadsheetPackage

__version__ = "0.1.0"

__all__ = [
    "ConversionResult",
    "MonospaceTextMeasurer",
    "PackageError",
    "PillowTextMeasurer",
    "Rect",
    "Settings",
    "SheetCanvasError",
    "SheetNotFoundError",
    "SkipRecord",
    "SpreadsheetPackage",
    "Stage",
    "SupplementalText",
    "TextLayout",
    "convert_workbook",
    "element_to_dict",
    "load_settings",
    "reconstruct_sheet",
]
