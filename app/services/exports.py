from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from app.models import AttendanceStatus
from app.schemas import OrganizationAttendanceRow, OrganizationReportResponse

ORGANIZATION_EXPORT_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

DAILY_HEADERS = [
    "Date",
    "Employee No",
    "Employee",
    "Email",
    "Department",
    "Work Mode",
    "Location",
    "First Check-in",
    "Last Check-out",
    "Work Hours",
    "Break Hours",
    "Gross Hours",
    "Status",
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
META_LABEL_FILL = PatternFill(fill_type="solid", fgColor="EAF4F9")
META_VALUE_FILL = PatternFill(fill_type="solid", fgColor="F8FCFF")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
ALERT_FILL = PatternFill(fill_type="solid", fgColor="FDE2E4")

HEADER_FONT = Font(bold=True, color="FFFFFF")
BOLD_FONT = Font(bold=True, color="0F172A")
MUTED_FONT = Font(color="334155")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)

_STATUS_FILLS = {
    AttendanceStatus.ABSENT.value: ALERT_FILL,
    AttendanceStatus.HALF_DAY.value: WARNING_FILL,
    AttendanceStatus.ON_LEAVE.value: WARNING_FILL,
}


def _to_excel_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _row_values(row: OrganizationAttendanceRow) -> list[object]:
    name = " ".join(part for part in (row.first_name, row.last_name) if part)
    return [
        row.attendance_date,
        row.employee_number or "-",
        name or "-",
        row.work_email or "-",
        row.department_name or "-",
        row.work_mode.value,
        row.location or "-",
        _to_excel_datetime(row.first_check_in),
        _to_excel_datetime(row.last_check_out),
        row.total_work_hours,
        row.total_break_hours,
        row.gross_hours,
        row.status.value,
    ]


def _append_daily_sheet(ws: Worksheet, report: OrganizationReportResponse) -> None:
    ws.append(DAILY_HEADERS)
    _style_header(ws)
    status_col = DAILY_HEADERS.index("Status") + 1

    for index, row in enumerate(report.attendance):
        ws.append(_row_values(row))
        row_idx = ws.max_row
        row_fill = _STATUS_FILLS.get(row.status.value)
        if row_fill is None and index % 2 == 1:
            row_fill = ZEBRA_FILL
        for col_idx in range(1, len(DAILY_HEADERS) + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if row_fill is not None:
                cell.fill = row_fill
            if isinstance(cell.value, datetime):
                cell.number_format = "yyyy-mm-dd hh:mm"
            elif isinstance(cell.value, float):
                cell.number_format = "0.00"
        ws.cell(row=row_idx, column=status_col).alignment = Alignment(horizontal="center")

    if report.attendance:
        ws.auto_filter.ref = f"A1:{get_column_letter(len(DAILY_HEADERS))}{ws.max_row}"
    ws.freeze_panes = "A2"
    _auto_width(ws)


def _append_summary_sheet(ws: Worksheet, report: OrganizationReportResponse) -> None:
    summary = report.summary
    total_gross = round(sum(row.gross_hours for row in report.attendance), 2)
    rows: list[tuple[str, object]] = [
        ("Generated (UTC)", datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")),
        ("Total Records", summary.total_records),
        ("Present", summary.present),
        ("Absent", summary.absent),
        ("Half Day", summary.half_day),
        ("On Leave", summary.on_leave),
        ("Total Gross Hours", total_gross),
    ]
    for label, value in rows:
        ws.append([label, value])
        label_cell = ws.cell(row=ws.max_row, column=1)
        value_cell = ws.cell(row=ws.max_row, column=2)
        label_cell.font = BOLD_FONT
        label_cell.fill = META_LABEL_FILL
        label_cell.border = THIN_BORDER
        value_cell.font = MUTED_FONT
        value_cell.fill = META_VALUE_FILL
        value_cell.border = THIN_BORDER
    _auto_width(ws)


def build_organization_report_xlsx(report: OrganizationReportResponse) -> bytes:
    wb = Workbook()
    ws_daily = wb.active
    ws_daily.title = "Attendance"
    _append_daily_sheet(ws_daily, report)
    _append_summary_sheet(wb.create_sheet("Summary"), report)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
