"""Shared exceptions."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SheetCanvasError(Exception):
    message: str
    code: str = "sheetcanvas_error"

    def __str__(self) -> str:
        return self.message


class PackageError(SheetCanvasError):
    """The input is not a readable spreadsheet package."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="package_error")


class SheetNotFoundError(SheetCanvasError):
    def __init__(self, sheet_name: str) -> None:
        super().__init__(message=f"Sheet not found: {sheet_name}", code="sheet_not_found")
        self.sheet_name = sheet_name
