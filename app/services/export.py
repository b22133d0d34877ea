"""Session attendance exports: JSON payload, CSV, Excel (openpyxl) and PDF (ReportLab)."""
import io
from datetime import datetime
from typing import Sequence
from xml.sax.saxutils import escape

import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.config import settings
from app.models.session import AttendanceSession
from app.services.aggregate import PRESENT, Rollup, SheetRow

COLUMNS = ["Roll No", "Student ID", "Name", "Father Name", "Status", "Check-in Time"]

_HEADER_FILL = "3498DB"
_PRESENT_FILL = "C8E6C9"


def _format_time(ts: datetime | None) -> str:
    return ts.strftime("%Y-%m-%d %I:%M %p") if ts else "-"


def session_payload(session: AttendanceSession, rows: Sequence[SheetRow], totals: Rollup) -> dict:
    return {
        "session": {
            "id": session.session_id,
            "date": session.date,
            "subject": session.subject_name,
            "subjectCode": session.subject_code,
            "secretCode": session.secret_code,
            "totalStudents": totals.total,
            "presentCount": totals.present,
            "absentCount": totals.absent,
            "attendancePercentage": totals.percentage,
        },
        "attendance": [
            {
                "rollNumber": r.roll_number,
                "id": r.id,
                "name": r.name,
                "father": r.father,
                "status": r.status,
                "checkInTime": r.check_in_time.isoformat() if r.check_in_time else None,
                "classGroup": r.class_group,
                "labGroup": r.lab_group,
            }
            for r in rows
        ],
        "exportedAt": datetime.utcnow().isoformat(),
    }


def sheet_dataframe(rows: Sequence[SheetRow]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            [r.roll_number, r.id, r.name, r.father, r.status, _format_time(r.check_in_time)]
            for r in rows
        ],
        columns=COLUMNS,
    )


def export_filename(session: AttendanceSession, ext: str) -> str:
    return f"attendance_{session.subject_code}_{session.date}.{ext}"


def to_csv(session: AttendanceSession, rows: Sequence[SheetRow], totals: Rollup) -> str:
    stream = io.StringIO()
    stream.write(f"# Attendance Report - {session.subject_name}\n")
    stream.write(f"# Date: {session.date}\n")
    stream.write(f"# Total Students: {totals.total}, Present: {totals.present}, Absent: {totals.absent}\n")
    stream.write(f"# Attendance Percentage: {totals.percentage}%\n")
    stream.write("\n")
    sheet_dataframe(rows).to_csv(stream, index=False)
    return stream.getvalue()


def to_excel(session: AttendanceSession, rows: Sequence[SheetRow], totals: Rollup) -> bytes:
    output = io.BytesIO()
    df = sheet_dataframe(rows)
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Attendance", startrow=3)
        ws = writer.sheets["Attendance"]

        ws.merge_cells("A1:F1")
        ws["A1"] = f"{settings.app_name} - {session.subject_name}"
        ws["A1"].font = Font(bold=True, size=16)
        ws["A1"].alignment = Alignment(horizontal="center")
        ws.merge_cells("A2:F2")
        ws["A2"] = f"Date: {session.date}    Present: {totals.present}/{totals.total} ({totals.percentage}%)"
        ws["A2"].font = Font(bold=True)
        ws["A2"].alignment = Alignment(horizontal="center")

        for cell in ws[4]:
            cell.font = Font(bold=True, color="FFFFFF")
            cell.fill = PatternFill("solid", fgColor=_HEADER_FILL)

        present_fill = PatternFill("solid", fgColor=_PRESENT_FILL)
        for offset, row in enumerate(rows):
            if row.status == PRESENT:
                for cell in ws[5 + offset]:
                    cell.fill = present_fill

        for idx, column in enumerate(COLUMNS):
            values = [str(v) for v in df[column].tolist()] + [column]
            width = max(len(v) for v in values)
            ws.column_dimensions[chr(ord("A") + idx)].width = max(10, width + 2)
    output.seek(0)
    return output.getvalue()


def to_pdf(session: AttendanceSession, rows: Sequence[SheetRow], totals: Rollup) -> bytes:
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=12 * mm,
        rightMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=f"Attendance {session.subject_code} {session.date}",
    )
    styles = getSampleStyleSheet()
    story = [
        Paragraph(escape(settings.app_name), styles["Title"]),
        Paragraph(escape(session.subject_name), styles["Heading2"]),
        Paragraph(f"Date: {session.date}", styles["Normal"]),
        Paragraph(
            f"Total: {totals.total} &nbsp; Present: {totals.present} &nbsp; "
            f"Absent: {totals.absent} &nbsp; Attendance: {totals.percentage}%",
            styles["Normal"],
        ),
        Spacer(1, 6 * mm),
    ]

    data = [COLUMNS] + [
        [str(r.roll_number), r.id, r.name, r.father, r.status, _format_time(r.check_in_time)]
        for r in rows
    ]
    table = Table(data, repeatRows=1)
    style = [
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#dddddd")),
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(f"#{_HEADER_FILL}")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
    ]
    for offset, row in enumerate(rows, start=1):
        if row.status == PRESENT:
            style.append(("BACKGROUND", (0, offset), (-1, offset), colors.HexColor(f"#{_PRESENT_FILL}")))
    table.setStyle(TableStyle(style))
    story.append(table)

    doc.build(story)
    return buf.getvalue()
