"""Builders for test workbooks and DrawingML snippets."""

import io
import zipfile

from openpyxl import Workbook
from openpyxl.drawing.image import Image as XLImage
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from PIL import Image

EMU = 9525

DRAWING_NS = (
    'xmlns:xdr="http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing" '
    'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" '
    'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships"'
)


def png_bytes(width: int, height: int, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def marker(tag: str, col: int, row: int, col_off: int = 0, row_off: int = 0) -> str:
    return (
        f"<xdr:{tag}><xdr:col>{col}</xdr:col><xdr:colOff>{col_off}</xdr:colOff>"
        f"<xdr:row>{row}</xdr:row><xdr:rowOff>{row_off}</xdr:rowOff></xdr:{tag}>"
    )


def picture(obj_id: int, name: str, rel_id: str) -> str:
    return (
        f'<xdr:pic><xdr:nvPicPr><xdr:cNvPr id="{obj_id}" name="{name}" descr="{name} picture"/>'
        f"<xdr:cNvPicPr/></xdr:nvPicPr>"
        f'<xdr:blipFill><a:blip r:embed="{rel_id}"/><a:stretch><a:fillRect/></a:stretch></xdr:blipFill>'
        f'<xdr:spPr><a:prstGeom prst="rect"><a:avLst/></a:prstGeom></xdr:spPr></xdr:pic>'
    )


def shape(obj_id: int, name: str, sp_pr: str, text: str = "", hidden: bool = False) -> str:
    hidden_attr = ' hidden="1"' if hidden else ""
    body = ""
    if text:
        body = (
            '<xdr:txBody><a:bodyPr anchor="ctr"/><a:p><a:pPr algn="ctr"/>'
            f'<a:r><a:rPr sz="1200" b="1"/><a:t>{text}</a:t></a:r></a:p></xdr:txBody>'
        )
    return (
        f'<xdr:sp><xdr:nvSpPr><xdr:cNvPr id="{obj_id}" name="{name}"{hidden_attr}/><xdr:cNvSpPr/></xdr:nvSpPr>'
        f"<xdr:spPr>{sp_pr}</xdr:spPr>{body}</xdr:sp>"
    )


def drawing_xml(*anchors: str) -> bytes:
    return f'<?xml version="1.0" encoding="UTF-8"?><xdr:wsDr {DRAWING_NS}>{"".join(anchors)}</xdr:wsDr>'.encode()


YELLOW_FILL = '<a:solidFill><a:srgbClr val="FFFF00"/></a:solidFill>'
NO_FILL = "<a:noFill/><a:ln><a:noFill/></a:ln>"

SAMPLE_DRAWING = drawing_xml(
    # 1: picture over E2:F5
    "<xdr:twoCellAnchor>" + marker("from", 4, 1) + marker("to", 6, 5)
    + picture(2, "Logo", "rId1") + "<xdr:clientData/></xdr:twoCellAnchor>",
    # 2: text box, 200 x 50 px
    "<xdr:oneCellAnchor>" + marker("from", 1, 6)
    + f'<xdr:ext cx="{200 * EMU}" cy="{50 * EMU}"/>'
    + shape(3, "Note", YELLOW_FILL, text="Hello world") + "<xdr:clientData/></xdr:oneCellAnchor>",
    # 3: hidden shape
    "<xdr:twoCellAnchor>" + marker("from", 0, 12) + marker("to", 2, 14)
    + shape(4, "Secret", YELLOW_FILL, hidden=True) + "<xdr:clientData/></xdr:twoCellAnchor>",
    # 4: invisible shape
    "<xdr:twoCellAnchor>" + marker("from", 0, 15) + marker("to", 2, 17)
    + shape(5, "Ghost", NO_FILL) + "<xdr:clientData/></xdr:twoCellAnchor>",
    # 5: group
    "<xdr:twoCellAnchor>" + marker("from", 3, 15) + marker("to", 5, 17)
    + '<xdr:grpSp><xdr:nvGrpSpPr><xdr:cNvPr id="6" name="Group"/><xdr:cNvGrpSpPr/></xdr:nvGrpSpPr>'
    + "<xdr:grpSpPr/></xdr:grpSp><xdr:clientData/></xdr:twoCellAnchor>",
    # 6: picture whose bytes are not an image
    "<xdr:oneCellAnchor>" + marker("from", 7, 1)
    + f'<xdr:ext cx="{50 * EMU}" cy="{50 * EMU}"/>'
    + picture(7, "Broken", "rId2") + "<xdr:clientData/></xdr:oneCellAnchor>",
    # 7: picture without a package part
    "<xdr:oneCellAnchor>" + marker("from", 7, 6)
    + f'<xdr:ext cx="{50 * EMU}" cy="{50 * EMU}"/>'
    + picture(8, "Dangling", "rId3") + "<xdr:clientData/></xdr:oneCellAnchor>",
    # 8: far outside the sheet
    f'<xdr:absoluteAnchor><xdr:pos x="{-3000 * EMU}" y="0"/><xdr:ext cx="{40 * EMU}" cy="{40 * EMU}"/>'
    + shape(9, "FarAway", YELLOW_FILL) + "<xdr:clientData/></xdr:absoluteAnchor>",
)

SAMPLE_DRAWING_RELS = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/image" '
    'Target="../media/logo.png"/>'
    '<Relationship Id="rId2" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/image" '
    'Target="../media/broken.png"/>'
    '<Relationship Id="rId3" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/hyperlink" '
    'Target="https://example.com/missing.png" TargetMode="External"/>'
    "</Relationships>"
).encode()


def build_workbook_bytes() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Summary"

    ws.column_dimensions["B"].width = 20
    ws.row_dimensions[1].height = 30

    ws["A1"] = "Title"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A1"].fill = PatternFill(fill_type="solid", fgColor="FFFF0000")
    thin = Side(style="thin", color="FF000000")
    ws["A1"].border = Border(left=thin, right=thin, top=thin, bottom=Side(style="medium", color="FF000000"))

    ws["A3"] = "Total"
    ws["A3"].alignment = Alignment(horizontal="center", vertical="center")
    ws.merge_cells("A3:C3")

    ws["B5"] = 42

    ws["D10"] = "ghost"
    ws.row_dimensions[10].hidden = True

    # Creates the drawing part and its sheet relationship; replaced below.
    ws.add_image(XLImage(io.BytesIO(png_bytes(10, 10))), "E2")

    other = wb.create_sheet("Other")
    other["B2"] = "x"

    buf = io.BytesIO()
    wb.save(buf)
    return patch_drawing(buf.getvalue(), SAMPLE_DRAWING, SAMPLE_DRAWING_RELS)


def patch_drawing(xlsx: bytes, drawing: bytes, rels: bytes) -> bytes:
    """Swap the first drawing part (and its .rels) of a saved workbook."""
    src = zipfile.ZipFile(io.BytesIO(xlsx))
    drawing_parts = [n for n in src.namelist() if n.startswith("xl/drawings/drawing") and n.endswith(".xml")]
    assert drawing_parts, "workbook has no drawing part"
    drawing_part = drawing_parts[0]
    rels_part = drawing_part.replace("xl/drawings/", "xl/drawings/_rels/") + ".rels"

    out = io.BytesIO()
    with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as dst:
        for name in src.namelist():
            if name in (drawing_part, rels_part):
                continue
            dst.writestr(name, src.read(name))
        dst.writestr(drawing_part, drawing)
        dst.writestr(rels_part, rels)
        dst.writestr("xl/media/logo.png", png_bytes(40, 20))
        dst.writestr("xl/media/broken.png", b"this is not a picture")
    return out.getvalue()


def build_sheet_bytes(configure=None, drawing=None, rels=SAMPLE_DRAWING_RELS) -> bytes:
    """One-sheet workbook ("Sheet1"), optionally with a replacement drawing part."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    if configure is not None:
        configure(ws)
    if drawing is not None:
        ws.add_image(XLImage(io.BytesIO(png_bytes(10, 10))), "A1")

    buf = io.BytesIO()
    wb.save(buf)
    if drawing is None:
        return buf.getvalue()
    return patch_drawing(buf.getvalue(), drawing, rels)
