from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from io import BytesIO

import pandas as pd
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib import colors
from reportlab.lib.units import cm

from database import get_db
from crud.timers import list_all
from constants.timer_config import TimerStatus
from utils.countdown import format_hms, format_step_label

router = APIRouter(prefix="/api/timers/export", tags=["Stability Timers - Export"])

COLUMNS = ["Sample ID", "Instrument", "Test", "Step", "Remaining Time", "Status"]

ACTIVE_BG = colors.HexColor("#d4edda")
COMPLETED_BG = colors.HexColor("#f8f9fa")


def timer_rows(timers):
    return [
        [
            t.sample_id,
            t.instrument or "",
            t.mode,
            format_step_label(t.total_secs),
            format_hms(t.remaining_secs),
            t.status,
        ]
        for t in timers
    ]


# ======================================================
# PDF EXPORT
# ======================================================

@router.get("/pdf")
async def export_timers_pdf(db: AsyncSession = Depends(get_db)):
    timers = await list_all(db)
    now = datetime.now()

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=1.2 * cm,
        leftMargin=1.2 * cm,
        topMargin=1.2 * cm,
        bottomMargin=1.2 * cm,
    )

    story = []

    # ---------- TITLE ----------
    story.append(
        Paragraph(
            "<b>URINE STABILITY TIMERS</b>",
            ParagraphStyle("title", fontSize=14, alignment=1, spaceAfter=6),
        )
    )
    story.append(
        Paragraph(
            f"<b>As of:</b> {now.strftime('%d-%m-%Y %H:%M:%S')}",
            ParagraphStyle("sub", fontSize=10, alignment=1, textColor=colors.grey),
        )
    )
    story.append(Spacer(1, 10))

    rows = timer_rows(timers)
    if not rows:
        story.append(Paragraph("No timers", ParagraphStyle("empty", fontSize=10)))
    else:
        table = Table([COLUMNS] + rows, repeatRows=1)

        style = [
            ("GRID", (0, 0), (-1, -1), 0.4, colors.grey),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#343a40")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONT", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("ALIGN", (3, 0), (-1, -1), "CENTER"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
        ]
        # row shading mirrors the live table
        for i, t in enumerate(timers, start=1):
            bg = ACTIVE_BG if t.status == TimerStatus.ACTIVE.value else COMPLETED_BG
            style.append(("BACKGROUND", (0, i), (-1, i), bg))

        table.setStyle(TableStyle(style))
        story.append(table)

    doc.build(story)
    buffer.seek(0)

    return StreamingResponse(
        buffer,
        media_type="application/pdf",
        headers={
            "Content-Disposition":
                f"attachment; filename=timers_{now.strftime('%Y%m%d_%H%M%S')}.pdf"
        },
    )


# ======================================================
# EXCEL EXPORT
# ======================================================

@router.get("/excel")
async def export_timers_excel(db: AsyncSession = Depends(get_db)):
    timers = await list_all(db)
    now = datetime.now()

    df = pd.DataFrame(timer_rows(timers), columns=COLUMNS)
    df["Start Time"] = pd.to_datetime([t.start_time for t in timers])
    df["End Time"] = pd.to_datetime([t.end_time for t in timers])

    output = BytesIO()
    df.to_excel(output, index=False, sheet_name="Timers")
    output.seek(0)

    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition":
                f"attachment; filename=timers_{now.strftime('%Y%m%d_%H%M%S')}.xlsx"
        },
    )
