"""Spreadsheet export of admin rankings.

The workbook is written as SpreadsheetML (the Excel 2003 XML format), which
opens directly in Excel and LibreOffice and allows one worksheet per project.
"""

import xml.etree.ElementTree as ET

SPREADSHEET_NS = "urn:schemas-microsoft-com:office:spreadsheet"
EXCEL_MEDIA_TYPE = "application/vnd.ms-excel"

RANKING_EXPORT_COLUMNS = (
    "순위",
    "점수",
    "프로젝트",
    "학번",
    "이름",
    "이메일",
    "Public ID",
    "첨부",
    "제출 일시",
)

ET.register_namespace("ss", SPREADSHEET_NS)


def _ss(name: str) -> str:
    return f"{{{SPREADSHEET_NS}}}{name}"


def format_bytes(size: int | None) -> str:
    if size is None:
        return ""
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


def format_attachment(row: dict) -> str:
    if not row["has_file"]:
        return "-"
    file_name = row.get("file_name")
    file_size = row.get("file_size")
    if file_name and file_size:
        return f"{file_name} ({format_bytes(file_size)})"
    if file_name:
        return file_name
    if file_size:
        return f"첨부 ({format_bytes(file_size)})"
    return "첨부 있음"


def sheet_name(project_number: int) -> str:
    return f"프로젝트 {project_number}"


def _append_row(table: ET.Element, values, header: bool = False) -> None:
    row = ET.SubElement(table, _ss("Row"))
    for value in values:
        is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
        cell = ET.SubElement(row, _ss("Cell"))
        if header:
            cell.set(_ss("StyleID"), "sHeader")
        elif not is_number:
            cell.set(_ss("StyleID"), "sText")
        data = ET.SubElement(cell, _ss("Data"))
        data.set(_ss("Type"), "Number" if is_number else "String")
        data.text = "" if value is None else str(value)


def _ranking_values(row: dict) -> list:
    return [
        row["position"],
        row["score"],
        row["project_number"],
        row["student_number"],
        row["name"] or "",
        row["email"] or "",
        row["public_id"],
        format_attachment(row),
        row["evaluated_at"].strftime("%Y-%m-%d %H:%M"),
    ]


def build_ranking_workbook(sheets: list[tuple[int, list[dict]]]) -> bytes:
    """Render ``(project_number, ranking rows)`` pairs as one worksheet each."""
    workbook = ET.Element(_ss("Workbook"))

    styles = ET.SubElement(workbook, _ss("Styles"))
    header_style = ET.SubElement(styles, _ss("Style"), {_ss("ID"): "sHeader"})
    ET.SubElement(header_style, _ss("Font"), {_ss("Bold"): "1"})
    text_style = ET.SubElement(styles, _ss("Style"), {_ss("ID"): "sText"})
    ET.SubElement(text_style, _ss("NumberFormat"), {_ss("Format"): "@"})

    for project_number, rows in sheets:
        worksheet = ET.SubElement(workbook, _ss("Worksheet"), {_ss("Name"): sheet_name(project_number)})
        table = ET.SubElement(worksheet, _ss("Table"))
        _append_row(table, RANKING_EXPORT_COLUMNS, header=True)
        for row in rows:
            _append_row(table, _ranking_values(row))

    body = ET.tostring(workbook, encoding="unicode")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<?mso-application progid="Excel.Sheet"?>\n'
        f"{body}"
    ).encode("utf-8")
