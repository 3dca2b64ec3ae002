from io import BytesIO
import logging
from xml.sax.saxutils import escape

from django.utils import timezone
from reportlab.graphics.charts.barcharts import HorizontalBarChart, VerticalBarChart
from reportlab.graphics.charts.piecharts import Pie
from reportlab.graphics.shapes import Drawing, String
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, PageBreak

logger = logging.getLogger('backend.reports')

PALETTE = [
    colors.HexColor('#1f77b4'), colors.HexColor('#ff7f0e'), colors.HexColor('#2ca02c'),
    colors.HexColor('#d62728'), colors.HexColor('#9467bd'), colors.HexColor('#8c564b'),
]
HEADER_COLOR = colors.HexColor('#2c3e50')
CHART_WIDTH = 16 * cm
CHART_HEIGHT = 7 * cm


def _money(value):
    return f"R$ {float(value or 0):,.2f}"


def _text(value):
    if value is None:
        return '-'
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if hasattr(value, 'strftime'):
        return value.strftime('%d/%m/%Y')
    return str(value)


class PDFReportGenerator:
    """Builds the report PDFs: title block, tables and charts"""

    def __init__(self):
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        if 'ReportTitle' not in self.styles.byName:
            self.styles.add(ParagraphStyle(
                name='ReportTitle',
                parent=self.styles['Heading1'],
                fontSize=20,
                textColor=HEADER_COLOR,
                spaceAfter=6,
                alignment=TA_CENTER,
            ))
        if 'ReportSubtitle' not in self.styles.byName:
            self.styles.add(ParagraphStyle(
                name='ReportSubtitle',
                parent=self.styles['Normal'],
                fontSize=10,
                textColor=colors.grey,
                spaceAfter=18,
                alignment=TA_CENTER,
            ))
        if 'SectionHeading' not in self.styles.byName:
            self.styles.add(ParagraphStyle(
                name='SectionHeading',
                parent=self.styles['Heading2'],
                fontSize=14,
                textColor=HEADER_COLOR,
                spaceBefore=14,
                spaceAfter=8,
            ))

    def _title_block(self, title):
        generated = timezone.localtime().strftime('%d/%m/%Y %H:%M')
        return [
            Paragraph('SGPC - Construction Project Management', self.styles['ReportSubtitle']),
            Paragraph(escape(title), self.styles['ReportTitle']),
            Paragraph(f"Generated on {generated}", self.styles['ReportSubtitle']),
        ]

    def _heading(self, text):
        # Paragraph parses its text as markup; names come from users
        return Paragraph(escape(str(text)), self.styles['SectionHeading'])

    def _table(self, header, rows, col_widths=None):
        table = Table([header] + rows, colWidths=col_widths, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), HEADER_COLOR),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f2f2f2')]),
            ('BOTTOMPADDING', (0, 0), (-1, 0), 6),
        ]))
        return table

    def _key_values(self, pairs):
        table = Table([[Paragraph(f"<b>{label}</b>", self.styles['Normal']), _text(value)] for label, value in pairs],
                      colWidths=[6 * cm, 10 * cm])
        table.setStyle(TableStyle([
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('GRID', (0, 0), (-1, -1), 0.25, colors.lightgrey),
            ('BACKGROUND', (0, 0), (0, -1), colors.HexColor('#ecf0f1')),
        ]))
        return table

    def _pie_chart(self, title, labels, values):
        if not values or sum(values) <= 0:
            return None
        drawing = Drawing(CHART_WIDTH, CHART_HEIGHT)
        drawing.add(String(CHART_WIDTH / 2, CHART_HEIGHT - 12, title, textAnchor='middle', fontSize=10))
        pie = Pie()
        pie.x = CHART_WIDTH / 2 - 2.5 * cm
        pie.y = 0.5 * cm
        pie.width = 5 * cm
        pie.height = 5 * cm
        pie.data = values
        pie.labels = [f"{label} ({value:g})" for label, value in zip(labels, values)]
        pie.sideLabels = True
        for index in range(len(values)):
            pie.slices[index].fillColor = PALETTE[index % len(PALETTE)]
        drawing.add(pie)
        return drawing

    def _bar_chart(self, title, labels, series, horizontal=False, value_max=None):
        """series is a list of value lists, one per bar group"""
        if not labels or not any(any(values) for values in series):
            return None
        height = max(CHART_HEIGHT, (len(labels) * 0.6 + 2) * cm) if horizontal else CHART_HEIGHT
        drawing = Drawing(CHART_WIDTH, height)
        drawing.add(String(CHART_WIDTH / 2, height - 12, title, textAnchor='middle', fontSize=10))
        chart = HorizontalBarChart() if horizontal else VerticalBarChart()
        chart.x = 4 * cm if horizontal else 1.5 * cm
        chart.y = 1.5 * cm if not horizontal else 0.8 * cm
        chart.width = CHART_WIDTH - chart.x - 0.5 * cm
        chart.height = height - chart.y - 1 * cm
        chart.data = [tuple(float(value) for value in values) for values in series]
        chart.categoryAxis.categoryNames = [label[:20] for label in labels]
        chart.categoryAxis.labels.fontSize = 7
        if not horizontal:
            chart.categoryAxis.labels.angle = 30
            chart.categoryAxis.labels.boxAnchor = 'ne'
        chart.valueAxis.valueMin = 0
        if value_max is not None:
            chart.valueAxis.valueMax = value_max
        chart.valueAxis.labels.fontSize = 7
        for index in range(len(series)):
            chart.bars[index].fillColor = PALETTE[index % len(PALETTE)]
        drawing.add(chart)
        return drawing

    def _add_chart(self, story, chart):
        if chart is not None:
            story.append(chart)
            story.append(Spacer(1, 0.4 * cm))

    def _build(self, story):
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=A4,
            leftMargin=1.5 * cm, rightMargin=1.5 * cm, topMargin=1.5 * cm, bottomMargin=1.5 * cm,
        )
        doc.build(story)
        pdf_bytes = buffer.getvalue()
        buffer.close()
        return pdf_bytes

    # Sections

    def _project_section(self, rows):
        story = [self._heading('Projects')]
        if not rows:
            story.append(Paragraph('No projects found.', self.styles['Normal']))
            return story

        status_counts = {}
        for row in rows:
            status_counts[row['status_description']] = status_counts.get(row['status_description'], 0) + 1
        self._add_chart(story, self._pie_chart('Projects by status', list(status_counts), list(status_counts.values())))
        self._add_chart(story, self._bar_chart(
            'Progress (%)', [row['name'] for row in rows], [[row['progress_percentage'] for row in rows]],
            horizontal=True, value_max=100,
        ))

        story.append(self._table(
            ['Name', 'Client', 'Status', 'Progress', 'Budget', 'Used', 'Tasks', 'Delayed'],
            [[row['name'], _text(row['client']), row['status_description'], f"{row['progress_percentage']}%",
              _money(row['total_budget']), _money(row['used_budget']),
              f"{row['completed_tasks']}/{row['total_tasks']}", _text(row['delayed'])] for row in rows],
        ))
        return story

    def _project_detail(self, row):
        story = [self._heading(row['name'])]
        story.append(self._key_values([
            ('Client', row['client']), ('Status', row['status_description']),
            ('Planned', f"{_text(row['start_date_planned'])} - {_text(row['end_date_planned'])}"),
            ('Actual', f"{_text(row['start_date_actual'])} - {_text(row['end_date_actual'])}"),
            ('Progress', f"{row['progress_percentage']}%"), ('Budget', _money(row['total_budget'])),
            ('Used budget', _money(row['used_budget'])), ('Days remaining', row['days_remaining']),
            ('Created by', row['created_by_name']), ('Team size', row['team_size']),
        ]))

        breakdown = row['cost_breakdown']
        self._add_chart(story, self._pie_chart(
            'Cost distribution', ['Labor', 'Material', 'Equipment'],
            [float(breakdown['total_labor_cost']), float(breakdown['total_material_cost']),
             float(breakdown['total_equipment_cost'])],
        ))

        if row['team_members']:
            story.append(self._heading('Team'))
            story.append(self._table(
                ['Name', 'Role', 'Assigned', 'Completed', 'Completion'],
                [[m['full_name'], m['role'], m['assigned_tasks_count'], m['completed_tasks_count'],
                  f"{m['task_completion_rate']:.1f}%"] for m in row['team_members']],
            ))
        if row['tasks']:
            story.append(self._heading('Tasks'))
            story.append(self._table(
                ['Title', 'Status', 'Progress', 'Assignee', 'Planned end', 'Cost'],
                [[t['title'], t['status'], f"{t['progress_percentage']}%", t['assigned_user_name'],
                  _text(t['end_date_planned']), _money(t['total_cost'])] for t in row['tasks']],
            ))

        metrics = row['performance_metrics']
        story.append(self._heading('Performance'))
        story.append(self._key_values([
            ('Schedule variance (days)', metrics['schedule_variance_days']),
            ('Budget variance', _money(metrics['budget_variance'])),
            ('Team efficiency', f"{metrics['team_efficiency']:.1f}%"),
            ('On-time completion', f"{metrics['on_time_completion_rate']:.1f}%"),
            ('Productivity (tasks/day)', metrics['productivity']),
            ('Hours variance', f"{metrics['hours_variance_percentage']:.1f}%"),
        ]))
        return story

    def _cost_section(self, rows):
        story = [self._heading('Costs')]
        if not rows:
            story.append(Paragraph('No projects found.', self.styles['Normal']))
            return story
        material = sum(float(row['material_costs']) for row in rows)
        service = sum(float(row['service_costs']) for row in rows)
        self._add_chart(story, self._pie_chart('Cost distribution', ['Materials', 'Services'], [material, service]))
        self._add_chart(story, self._bar_chart(
            'Budget utilisation (%)', [row['project_name'] for row in rows],
            [[row['budget_utilization_percent'] for row in rows]], horizontal=True,
        ))
        story.append(self._table(
            ['Project', 'Budget', 'Materials', 'Services', 'Total', 'Remaining', 'Used', 'Over'],
            [[row['project_name'], _money(row['total_budget']), _money(row['material_costs']),
              _money(row['service_costs']), _money(row['total_costs']), _money(row['remaining_budget']),
              f"{row['budget_utilization_percent']:.1f}%", _text(row['over_budget'])] for row in rows],
        ))
        return story

    def _stock_section(self, rows):
        story = [self._heading('Stock')]
        if not rows:
            story.append(Paragraph('No materials found.', self.styles['Normal']))
            return story
        low = [row for row in rows if row['low_stock']]
        self._add_chart(story, self._bar_chart(
            'Low stock: current vs minimum', [row['material_name'] for row in low],
            [[row['current_stock'] for row in low], [row['minimum_stock'] for row in low]],
        ))
        top_value = sorted(rows, key=lambda row: row['total_value'], reverse=True)[:10]
        self._add_chart(story, self._bar_chart(
            'Stock value', [row['material_name'] for row in top_value], [[row['total_value'] for row in top_value]],
        ))
        story.append(self._table(
            ['Material', 'Unit', 'Current', 'Minimum', 'Low', 'Unit cost', 'Value', 'Supplier'],
            [[row['material_name'], row['unit_of_measure'], _text(row['current_stock']), _text(row['minimum_stock']),
              _text(row['low_stock']), _money(row['unit_cost']), _money(row['total_value']),
              _text(row['supplier'])] for row in rows],
        ))
        return story

    # Documents

    def projects_pdf(self, rows, detailed=False):
        story = self._title_block('Project Report')
        if detailed:
            for index, row in enumerate(rows):
                if index:
                    story.append(PageBreak())
                story.extend(self._project_detail(row))
        else:
            story.extend(self._project_section(rows))
        return self._build(story)

    def costs_pdf(self, rows):
        story = self._title_block('Cost Report')
        story.extend(self._cost_section(rows))
        return self._build(story)

    def stock_pdf(self, rows):
        story = self._title_block('Stock Report')
        story.extend(self._stock_section(rows))
        return self._build(story)

    def summary_pdf(self, summary):
        story = self._title_block('Executive Summary')
        totals = summary['totals']
        story.append(self._key_values([
            ('Total budget', _money(totals['total_budget'])),
            ('Total costs', _money(totals['total_costs'])),
            ('Over-budget projects', totals['over_budget_projects']),
            ('Stock value', _money(totals['stock_value'])),
            ('Low-stock materials', totals['low_stock_materials']),
        ]))
        story.extend(self._project_section(summary['projects']))
        story.append(PageBreak())
        story.extend(self._cost_section(summary['costs']))
        story.append(PageBreak())
        story.extend(self._stock_section(summary['stock']))
        return self._build(story)
