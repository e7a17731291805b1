"""Shared fixtures: a small workbook with cells, merges and drawing objects."""

import pytest

from sheetcanvas.config import Settings
from sheetcanvas.ir import OffsetTables
from sheetcanvas.text_fit import MonospaceTextMeasurer
from sheetcanvas.xlsx_parser import SpreadsheetPackage

from xlsx_factory import build_workbook_bytes


@pytest.fixture(scope="session")
def sample_xlsx_bytes() -> bytes:
    return build_workbook_bytes()


@pytest.fixture
def sample_xlsx(tmp_path, sample_xlsx_bytes):
    path = tmp_path / "sample.xlsx"
    path.write_bytes(sample_xlsx_bytes)
    return path


@pytest.fixture
def sample_package(sample_xlsx_bytes):
    with SpreadsheetPackage.open(sample_xlsx_bytes) as package:
        yield package


@pytest.fixture
def measurer():
    return MonospaceTextMeasurer()


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def grid() -> OffsetTables:
    """10 columns of 64 px and 10 rows of 20 px."""
    return OffsetTables(
        col_offsets_px=tuple(float(64 * i) for i in range(11)),
        row_offsets_px=tuple(float(20 * i) for i in range(11)),
    )
