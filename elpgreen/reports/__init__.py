"""
ELP Green: PDF Reports

Plain tabular PDFs (reportlab platypus) for feasibility studies and AML
screening reports. Each page footer carries a 16-hex content hash of the
record the PDF was rendered from, so a printed copy can be matched back
to its source data.
"""
import io, json, hashlib
from datetime import datetime

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from elpgreen.config import PRODUCT_NAME, VERSION, currency_symbol
from elpgreen.db import save_report_file

BRAND = colors.HexColor("#1A936F")
GRID = colors.HexColor("#cbd5e1")
STRIPE = colors.HexColor("#f8fafc")


def report_hash(record: dict) -> str:
    payload = json.dumps(record, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()[:16]


def _safe_text(value) -> str:
    text = str(value if value is not None else "")
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _styles():
    styles = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("ElpTitle", parent=styles["Title"], textColor=BRAND, fontSize=18),
        "section": ParagraphStyle("ElpSection", parent=styles["Heading2"], textColor=BRAND, spaceBefore=10),
        "body": ParagraphStyle("ElpBody", parent=styles["BodyText"], fontSize=9, leading=12),
    }


def _table(rows: list, widths: list, header: bool = True) -> Table:
    t = Table(rows, colWidths=widths, repeatRows=1 if header else 0)
    style = [
        ("GRID", (0, 0), (-1, -1), 0.35, GRID),
        ("FONTSIZE", (0, 0), (-1, -1), 8.5),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ROWBACKGROUNDS", (0, 1 if header else 0), (-1, -1), [colors.white, STRIPE]),
    ]
    if header:
        style += [("BACKGROUND", (0, 0), (-1, 0), BRAND), ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                  ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold")]
    t.setStyle(TableStyle(style))
    return t


def _render(title: str, story_fn, digest: str) -> bytes:
    buffer = io.BytesIO()
    pdf = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=36, rightMargin=36, topMargin=36, bottomMargin=42,
                            title=title, author=PRODUCT_NAME)
    generated = datetime.now().strftime("%Y-%m-%d %H:%M")

    def footer(canvas, doc):
        canvas.saveState()
        canvas.setFont("Helvetica", 7)
        canvas.setFillColor(colors.grey)
        canvas.drawString(doc.leftMargin, 20, f"{PRODUCT_NAME} v{VERSION} | generated {generated} | hash {digest}")
        canvas.drawRightString(doc.pagesize[0] - doc.rightMargin, 20, f"Page {doc.page}")
        canvas.restoreState()

    pdf.build(story_fn(pdf.width), onFirstPage=footer, onLaterPages=footer)
    return buffer.getvalue()


# ============================================================
# FEASIBILITY STUDY
# ============================================================
def study_pdf(study: dict, alerts: list = None, analysis_text: str = None) -> tuple:
    """Render a study. Returns (pdf_bytes, content_hash)."""
    s = _styles()
    digest = report_hash(study)
    sym = currency_symbol(study.get("currency") or "USD")
    money = lambda k: f"{sym}{float(study.get(k) or 0):,.0f}"

    def story(width):
        out = [Paragraph(_safe_text(f"Feasibility Study: {study.get('study_name')}"), s["title"]),
               Paragraph(_safe_text(f"{study.get('location') or ''} {study.get('country') or ''} | "
                                    f"status: {study.get('status', 'draft')}"), s["body"]), Spacer(1, 10)]

        out.append(Paragraph("Plant", s["section"]))
        out.append(_table([
            ["Daily capacity", f"{study.get('daily_capacity_tons')} t/day"],
            ["Operating days", str(study.get("operating_days_per_year"))],
            ["Utilization", f"{study.get('utilization_rate')}%"],
            ["Plant type", _safe_text(study.get("plant_type") or "-")],
        ], [width * 0.4, width * 0.6], header=False))

        out.append(Paragraph("Financial Results", s["section"]))
        out.append(_table([
            ["Metric", "Value"],
            ["Total investment", money("total_investment")],
            ["Annual revenue", money("annual_revenue")],
            ["Annual OPEX", money("annual_opex")],
            ["Annual EBITDA", money("annual_ebitda")],
            ["ROI", f"{float(study.get('roi_percentage') or 0):.1f}%"],
            ["IRR", f"{float(study.get('irr_percentage') or 0):.1f}%"],
            ["NPV (10 years)", money("npv_10_years")],
            ["Payback", f"{study.get('payback_months')} months"],
        ], [width * 0.4, width * 0.6]))

        if alerts:
            out.append(Paragraph("Benchmark Alerts", s["section"]))
            out.append(_table([["Level", "Category", "Detail"]] + [
                [a["level"], a["category"], Paragraph(_safe_text(a["detail"]), s["body"])] for a in alerts
            ], [width * 0.12, width * 0.18, width * 0.7]))

        if analysis_text:
            out.append(Paragraph("Analysis", s["section"]))
            out += [Paragraph(_safe_text(p), s["body"]) for p in analysis_text.split("\n") if p.strip()]
        return out

    content = _render(f"Feasibility {study.get('study_name')}", story, digest)
    print(f"[Reports] Study PDF {study.get('id')} ({len(content)} bytes, hash {digest})")
    return content, digest


# ============================================================
# AML SCREENING REPORT
# ============================================================
def aml_report_pdf(report: dict) -> tuple:
    """Render a screening report as returned by screening.get_report."""
    s = _styles()
    digest = report_hash({k: v for k, v in report.items() if k != "history"})

    def story(width):
        out = [Paragraph("AML / KYC Screening Report", s["title"]),
               Paragraph(_safe_text(f"Report {report.get('id')} | {report.get('created_at', '')}"), s["body"]),
               Spacer(1, 10),
               _table([
                   ["Subject", _safe_text(report.get("subject_name"))],
                   ["Type", report.get("entity_type", "-")],
                   ["Document", report.get("subject_company_registration") or report.get("subject_id_number") or "-"],
                   ["Country", report.get("subject_country") or "-"],
                   ["Risk level", str(report.get("risk_level", "-")).upper()],
                   ["Status", report.get("status", "-")],
                   ["Matches", str(report.get("total_matches", 0))],
                   ["Lists screened", str(report.get("total_screened_lists", 0))],
               ], [width * 0.3, width * 0.7], header=False)]

        out.append(Paragraph("Matches", s["section"]))
        matches = report.get("matches") or []
        if matches:
            out.append(_table([["#", "Name", "Source", "Tag", "Match"]] + [
                [str(m.get("match_rank", i)), Paragraph(_safe_text(m.get("matched_name")), s["body"]),
                 Paragraph(_safe_text(m.get("source_name")), s["body"]),
                 m.get("tag", ""), f"{m.get('match_rate', 0)}%"]
                for i, m in enumerate(matches, 1)
            ], [width * 0.06, width * 0.36, width * 0.34, width * 0.1, width * 0.14]))
        else:
            out.append(Paragraph("No matches above the configured threshold.", s["body"]))

        lists = report.get("screened_lists") or []
        if lists:
            out.append(Paragraph("Screened Lists", s["section"]))
            out.append(_table([["List", "Jurisdiction", "Matches"]] + [
                [Paragraph(_safe_text(l.get("name")), s["body"]), l.get("jurisdiction", ""),
                 str(l.get("matches_found", 0))] for l in lists
            ], [width * 0.6, width * 0.2, width * 0.2]))
        return out

    content = _render(f"AML report {report.get('id')}", story, digest)
    print(f"[Reports] AML PDF {report.get('id')} ({len(content)} bytes, hash {digest})")
    return content, digest


def save_pdf(prefix: str, record_id: str, content: bytes) -> str:
    filename = f"{prefix}_{record_id}_{datetime.now().strftime('%Y%m%d%H%M%S')}.pdf"
    return save_report_file(filename, content)
