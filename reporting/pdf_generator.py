"""
PDF report generator for sales analysis
Builds the report sections from an aggregate view and embeds rasterized charts
"""

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.lib.utils import ImageReader
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, PageBreak
from reportlab.platypus import Image
from typing import Dict, Any, List, Optional, Sequence, Tuple
from decimal import Decimal
from xml.sax.saxutils import escape
import io
import logging
from datetime import datetime

from config.settings import SETTINGS, FieldMap, ReportConfig
from data.models import AggregateView, ChartKind, ChartSpec, RasterArtifact
from reporting.charts import ChartRasterizer
from utils.exceptions import IncompleteAggregateError
from utils.helpers import format_amount, format_percent, format_timestamp

logger = logging.getLogger(__name__)

# Built-in CID font with Japanese coverage; no font file needed
CJK_FONT = 'HeiseiKakuGo-W5'
FALLBACK_FONT = 'Helvetica'


def _register_font() -> str:
    if CJK_FONT in pdfmetrics.getRegisteredFontNames():
        return CJK_FONT
    try:
        pdfmetrics.registerFont(UnicodeCIDFont(CJK_FONT))
        return CJK_FONT
    except Exception as e:
        logger.warning(f"Could not register {CJK_FONT} ({e}); non-Latin text may not render")
        return FALLBACK_FONT


def omission_label(omitted: int) -> str:
    return f"... {omitted} rows omitted"


def capped_rows(items: Sequence[Tuple[str, Any]], cap: int, unit: str = '',
                total: Optional[Decimal] = None) -> Tuple[List[List[str]], int]:
    """
    Table body rows for label/amount pairs, limited to `cap` data rows.

    When rows are dropped, a single marker row stating the omitted count is
    appended so truncation is never silent.

    Returns:
        (rows, omitted_count)
    """
    shown = list(items[:cap])
    omitted = max(0, len(items) - cap)
    rows = []
    for label, amount in shown:
        row = [str(label), format_amount(amount, unit)]
        if total is not None:
            row.append(format_percent(amount, total))
        rows.append(row)
    if omitted:
        marker = [omission_label(omitted), '']
        if total is not None:
            marker.append('')
        rows.append(marker)
    return rows, omitted


class ReportAssembler:
    """Generates the sales report PDF for one aggregate view"""

    def __init__(self, rasterizer: ChartRasterizer, config: Optional[ReportConfig] = None,
                 run_id: str = '', field_map: Optional[FieldMap] = None):
        self.rasterizer = rasterizer
        self.config = config or ReportConfig()
        self.fields = field_map or FieldMap()
        self.run_id = run_id
        self.charts_rendered = 0
        self.charts_skipped = 0
        self.font_name = _register_font()
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom paragraph styles"""
        for name in ('Normal', 'Heading2', 'Heading3'):
            self.styles[name].fontName = self.font_name

        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Heading1'],
            fontName=self.font_name,
            fontSize=22,
            spaceAfter=24,
            alignment=TA_CENTER,
            textColor=colors.darkblue
        ))

        self.styles.add(ParagraphStyle(
            name='SectionHeader',
            parent=self.styles['Heading2'],
            fontName=self.font_name,
            fontSize=15,
            spaceAfter=12,
            textColor=colors.darkblue
        ))

        self.styles.add(ParagraphStyle(
            name='KPI',
            parent=self.styles['Heading2'],
            fontName=self.font_name,
            fontSize=18,
            spaceAfter=6,
            alignment=TA_CENTER,
            textColor=colors.darkgreen
        ))

        self.styles.add(ParagraphStyle(
            name='Meta',
            parent=self.styles['Normal'],
            fontName=self.font_name,
            alignment=TA_RIGHT,
            textColor=colors.grey
        ))

    def generate(self, view: AggregateView) -> bytes:
        """
        Generate the PDF document for an aggregate view.

        Args:
            view: statistics produced by the aggregator

        Returns:
            PDF document bytes

        Raises:
            IncompleteAggregateError: a required derived field is missing
        """
        missing = view.missing_fields()
        if missing:
            raise IncompleteAggregateError(missing)

        logger.info(f"Generating PDF report for {view.record_count} records")
        self.charts_rendered = 0
        self.charts_skipped = 0

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=54,
            leftMargin=54,
            topMargin=54,
            bottomMargin=54,
            title=self.config.report_title,
            author=SETTINGS['app_name'],
            subject=view.label,
        )

        story = []

        # Title page with summary
        story.extend(self._create_summary_page(view))
        story.append(PageBreak())

        # Category table and bar chart
        story.extend(self._create_category_page(view))
        story.append(PageBreak())

        # Daily trend table and line chart
        story.extend(self._create_trend_page(view))
        story.append(PageBreak())

        # Top product and product ranking
        story.extend(self._create_top_entity_page(view))
        story.append(PageBreak())

        # Category share pie
        story.extend(self._create_pie_page(view))

        doc.build(story, onFirstPage=self._add_page_number, onLaterPages=self._add_page_number)

        pdf = buffer.getvalue()
        logger.info(
            f"PDF report generated: {len(pdf):,} bytes, "
            f"{self.charts_rendered} chart(s) embedded, {self.charts_skipped} skipped"
        )
        return pdf

    def _add_page_number(self, canvas, doc) -> None:
        canvas.saveState()
        canvas.setFont(FALLBACK_FONT, 8)
        canvas.setFillColor(colors.HexColor('#999999'))
        canvas.drawCentredString(A4[0] / 2.0, 0.4 * inch, f"Page {canvas.getPageNumber()}")
        canvas.restoreState()

    def _text(self, value: Any) -> str:
        return escape(str(value))

    def _table(self, header: List[str], rows: List[List[str]], col_widths: List[float],
               marker_row: bool = False) -> Table:
        table = Table([header] + rows, colWidths=col_widths, repeatRows=1)
        style = [
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e6e6e6')),
            ('FONTNAME', (0, 0), (-1, -1), self.font_name),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
            ('ALIGN', (1, 1), (-1, -1), 'RIGHT'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ]
        if marker_row:
            style.extend([
                ('SPAN', (0, -1), (-1, -1)),
                ('ALIGN', (0, -1), (-1, -1), 'CENTER'),
                ('TEXTCOLOR', (0, -1), (-1, -1), colors.grey),
            ])
        table.setStyle(TableStyle(style))
        return table

    def _chart(self, spec: ChartSpec) -> List:
        """Render and embed one chart; any problem leaves the page without it"""
        result = self.rasterizer.render(spec)
        if not isinstance(result, RasterArtifact):
            self.charts_skipped += 1
            logger.info(f"Chart omitted from report: {result.reason}")
            return []
        try:
            data = io.BytesIO(result.path.read_bytes())
            px_w, px_h = ImageReader(data).getSize()
            data.seek(0)
            max_width = 6.5 * inch
            width = min(max_width, float(px_w))
            height = width * px_h / px_w
            self.charts_rendered += 1
            return [Spacer(1, 12), Image(data, width=width, height=height)]
        except Exception as e:
            self.charts_skipped += 1
            logger.error(f"Could not embed chart {result.path}: {e}")
            return []

    def _chart_spec(self, kind: ChartKind, title: str, dataset: Dict[str, Decimal], cap: int) -> ChartSpec:
        return ChartSpec(
            kind=kind,
            title=title,
            dataset={label: float(amount) for label, amount in dataset.items()},
            width=self.config.chart_width,
            height=self.config.chart_height,
            category_cap=cap,
            max_points=self.config.max_trend_points,
            y_label=f"Sales ({self.config.currency_unit})" if kind != ChartKind.PIE else '',
        )

    @staticmethod
    def _sorted_desc(data: Dict[str, Decimal]) -> List[Tuple[str, Decimal]]:
        return sorted(data.items(), key=lambda kv: kv[1], reverse=True)

    def _create_summary_page(self, view: AggregateView) -> List:
        """Create title page with the sales summary table"""
        story = []
        unit = self.config.currency_unit

        story.append(Paragraph(self._text(self.config.report_title), self.styles['CustomTitle']))
        story.append(Paragraph(f"Generated: {format_timestamp(datetime.now())}", self.styles['Meta']))
        if self.run_id:
            story.append(Paragraph(f"Report ID: {self._text(self.run_id)}", self.styles['Meta']))
        story.append(Spacer(1, 20))

        story.append(Paragraph("1. Sales Summary", self.styles['SectionHeader']))
        story.append(Paragraph(f"Total Sales: {format_amount(view.total, unit)}", self.styles['KPI']))
        story.append(Spacer(1, 10))

        max_rec, min_rec = view.max_record, view.min_record
        rows = [
            ['Total sales', format_amount(view.total, unit)],
            ['Average sale', format_amount(view.average, unit)],
            ['Records', f"{view.record_count:,}"],
            ['Largest sale', f"{max_rec.record.get(self.fields.product, '')} "
                             f"{max_rec.record.get(self.fields.date, '')} ({format_amount(max_rec.amount, unit)})"],
            ['Smallest sale', f"{min_rec.record.get(self.fields.product, '')} "
                              f"{min_rec.record.get(self.fields.date, '')} ({format_amount(min_rec.amount, unit)})"],
            ['Top product', f"{view.top_entity.name} ({format_amount(view.top_entity.amount, unit)})"],
            ['Categories', f"{len(view.by_category):,}"],
            ['Days covered', f"{len(view.by_date):,}"],
        ]
        story.append(self._table(['Item', 'Value'], rows, [2.2 * inch, 4.0 * inch]))
        return story

    def _create_category_page(self, view: AggregateView) -> List:
        """Create category table and bar chart"""
        story = [Paragraph("2. Sales by Category", self.styles['SectionHeader'])]
        items = self._sorted_desc(view.by_category)
        rows, omitted = capped_rows(items, self.config.max_data_rows, self.config.currency_unit, view.total)
        story.append(self._table(['Category', 'Sales', 'Share'], rows,
                                 [2.6 * inch, 2.2 * inch, 1.2 * inch], marker_row=bool(omitted)))
        story.extend(self._chart(self._chart_spec(
            ChartKind.BAR, 'Sales by Category', dict(items), self.config.max_bar_categories)))
        return story

    def _create_trend_page(self, view: AggregateView) -> List:
        """Create daily trend table (row-capped) and line chart"""
        story = [Paragraph("3. Sales Trend by Date", self.styles['SectionHeader'])]
        items = list(view.by_date.items())
        rows, omitted = capped_rows(items, self.config.max_data_rows, self.config.currency_unit)
        if omitted:
            logger.info(f"Trend table truncated: {omitted} of {len(items)} rows omitted")
        story.append(self._table(['Date', 'Sales'], rows, [3.0 * inch, 3.0 * inch],
                                 marker_row=bool(omitted)))
        story.extend(self._chart(self._chart_spec(
            ChartKind.LINE, 'Daily Sales Trend', view.by_date, self.config.max_bar_categories)))
        return story

    def _create_top_entity_page(self, view: AggregateView) -> List:
        """Create top product summary and product ranking"""
        unit = self.config.currency_unit
        story = [Paragraph("4. Top Product", self.styles['SectionHeader'])]
        top = view.top_entity
        story.append(Paragraph(self._text(top.name), self.styles['KPI']))
        story.append(Paragraph(
            f"Sales: {format_amount(top.amount, unit)} ({format_percent(top.amount, view.total)} of total)",
            self.styles['Normal']))
        story.append(Spacer(1, 12))

        story.append(Paragraph("Product Ranking", self.styles['Heading3']))
        items = self._sorted_desc(view.by_product)
        rows, omitted = capped_rows(items, self.config.max_data_rows, unit, view.total)
        ranked = [[str(i)] + row for i, row in enumerate(rows, start=1)]
        if omitted:
            ranked[-1] = rows[-1] + ['']
        story.append(self._table(['#', 'Product', 'Sales', 'Share'], ranked,
                                 [0.5 * inch, 2.4 * inch, 2.0 * inch, 1.1 * inch], marker_row=bool(omitted)))
        story.extend(self._chart(self._chart_spec(
            ChartKind.BAR, 'Sales by Product', dict(items), self.config.max_bar_categories)))
        return story

    def _create_pie_page(self, view: AggregateView) -> List:
        """Create category share pie chart"""
        story = [Paragraph("5. Category Breakdown", self.styles['SectionHeader'])]
        cap = self.config.max_pie_categories
        count = len(view.by_category)
        if count > cap:
            story.append(Paragraph(f"Showing the top {cap} of {count} categories.", self.styles['Normal']))
        story.extend(self._chart(self._chart_spec(
            ChartKind.PIE, 'Category Share', dict(self._sorted_desc(view.by_category)), cap)))
        return story
