"""CSV and PDF renderings of a task list."""
from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from .database import Task, as_utc, utcnow

FORMATS = ("csv", "pdf")
MEDIA_TYPES = {"csv": "text/csv", "pdf": "application/pdf"}

CSV_HEADER = ["Name", "Description", "Completed", "Category", "Reminder", "Created at", "Completed at"]

DATETIME_FMT = "%d/%m/%Y %H:%M"
DATE_FMT = "%d/%m/%Y"


def _fmt_dt(value: Optional[datetime], fmt: str = DATETIME_FMT) -> str:
    value = as_utc(value)
    return value.strftime(fmt) if value else ""


def export_filename(fmt: str, start: date, end: date) -> str:
    return f"tasks_{start.isoformat()}_{end.isoformat()}.{fmt}"


def tasks_to_csv(tasks: Sequence[Task]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for t in tasks:
        writer.writerow([
            t.name or "",
            t.description or "",
            "Yes" if t.completed else "No",
            t.category or "",
            t.reminder_time or "",
            _fmt_dt(t.created_at),
            _fmt_dt(t.completed_at),
        ])
    # BOM so spreadsheet apps pick up UTF-8.
    return buf.getvalue().encode("utf-8-sig")


def _styles():
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("title", parent=base["Title"], fontSize=20),
        "period": ParagraphStyle("period", parent=base["Normal"], fontSize=12, alignment=1),
        "heading": ParagraphStyle("heading", parent=base["Heading2"], fontSize=14),
        "body": ParagraphStyle("body", parent=base["Normal"], fontSize=12, leading=16),
        "done": ParagraphStyle("done", parent=base["Normal"], fontName="Helvetica-Bold",
                               fontSize=11, textColor=colors.HexColor("#22c55e")),
        "pending": ParagraphStyle("pending", parent=base["Normal"], fontName="Helvetica-Bold",
                                  fontSize=11, textColor=colors.HexColor("#6b7280")),
        "description": ParagraphStyle("description", parent=base["Normal"], fontSize=10,
                                      leftIndent=15, textColor=colors.HexColor("#4b5563")),
        "details": ParagraphStyle("details", parent=base["Normal"], fontSize=9,
                                  leftIndent=15, textColor=colors.HexColor("#6b7280")),
    }


def _details_line(t: Task) -> str:
    parts = [f"Created: {_fmt_dt(t.created_at, DATE_FMT)}"]
    if t.category:
        parts.append(f"Category: {t.category}")
    if t.completed and t.completed_at:
        parts.append(f"Completed: {_fmt_dt(t.completed_at, DATE_FMT)}")
    if t.reminder_time:
        parts.append(f"Reminder: {t.reminder_time}")
    return " | ".join(parts)


def tasks_to_pdf(
    tasks: Sequence[Task],
    start_date: date,
    end_date: date,
    generated_at: Optional[datetime] = None,
) -> bytes:
    generated_at = generated_at or utcnow()
    styles = _styles()
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=18 * mm,
        bottomMargin=22 * mm,
        title="Task report - ddLOG",
    )

    total = len(tasks)
    done = sum(1 for t in tasks if t.completed)
    rate = f"{done / total * 100:.1f}" if total else "0"

    story = [
        Paragraph("Task report - ddLOG", styles["title"]),
        Paragraph(f"Period: {start_date.strftime(DATE_FMT)} - {end_date.strftime(DATE_FMT)}", styles["period"]),
        Spacer(1, 8 * mm),
        Paragraph("Summary", styles["heading"]),
        Paragraph(f"Total tasks: {total}", styles["body"]),
        Paragraph(f"Completed: {done}", styles["body"]),
        Paragraph(f"Pending: {total - done}", styles["body"]),
        Paragraph(f"Completion rate: {rate}%", styles["body"]),
        Spacer(1, 8 * mm),
    ]

    if not tasks:
        story.append(Paragraph("No tasks found for this period.", styles["body"]))
    else:
        story.append(Paragraph("Tasks", styles["heading"]))
        for t in tasks:
            mark = "[x]" if t.completed else "[ ]"
            story.append(Paragraph(f"{mark} {escape(t.name)}", styles["done" if t.completed else "pending"]))
            if t.description:
                story.append(Paragraph(escape(t.description), styles["description"]))
            story.append(Paragraph(escape(_details_line(t)), styles["details"]))
            story.append(Spacer(1, 4 * mm))

    footer = f"Generated {_fmt_dt(generated_at)} UTC | ddLOG task tracker"

    def _on_page(canvas, doc_):
        canvas.saveState()
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(colors.HexColor("#9ca3af"))
        canvas.drawCentredString(A4[0] / 2, 12 * mm, f"{footer} | page {doc_.page}")
        canvas.restoreState()

    doc.build(story, onFirstPage=_on_page, onLaterPages=_on_page)
    return buf.getvalue()
