import csv
import io
from decimal import Decimal

PROJECT_COLUMNS = [
    ('id', 'ID'), ('name', 'Name'), ('client', 'Client'), ('status_description', 'Status'),
    ('start_date_planned', 'Planned Start'), ('end_date_planned', 'Planned End'),
    ('start_date_actual', 'Actual Start'), ('end_date_actual', 'Actual End'),
    ('progress_percentage', 'Progress (%)'), ('total_budget', 'Total Budget'), ('used_budget', 'Used Budget'),
    ('total_tasks', 'Total Tasks'), ('completed_tasks', 'Completed Tasks'), ('delayed', 'Delayed'),
    ('days_remaining', 'Days Remaining'),
]

COST_COLUMNS = [
    ('project_id', 'Project ID'), ('project_name', 'Project'), ('client', 'Client'),
    ('total_budget', 'Total Budget'), ('material_costs', 'Material Costs'), ('service_costs', 'Service Costs'),
    ('total_costs', 'Total Costs'), ('remaining_budget', 'Remaining Budget'),
    ('budget_utilization_percent', 'Budget Utilization (%)'), ('over_budget', 'Over Budget'),
    ('report_date', 'Report Date'),
]

STOCK_COLUMNS = [
    ('material_id', 'Material ID'), ('material_name', 'Material'), ('unit_of_measure', 'Unit'),
    ('current_stock', 'Current Stock'), ('minimum_stock', 'Minimum Stock'), ('low_stock', 'Low Stock'),
    ('unit_cost', 'Unit Cost'), ('total_value', 'Total Value'), ('supplier', 'Supplier'),
    ('report_date', 'Report Date'),
]


def _cell(value):
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value)


def rows_to_csv(rows, columns):
    """Header cells are always quoted; data cells only when they hold a comma, quote or newline"""
    buffer = io.StringIO()
    csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n').writerow([label for _, label in columns])
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')
    for row in rows:
        writer.writerow([_cell(row.get(key)) for key, _ in columns])
    return buffer.getvalue()


def projects_csv(rows):
    return rows_to_csv(rows, PROJECT_COLUMNS)


def costs_csv(rows):
    return rows_to_csv(rows, COST_COLUMNS)


def stock_csv(rows):
    return rows_to_csv(rows, STOCK_COLUMNS)


def summary_csv(summary):
    """Sections one after another, separated by a blank line"""
    sections = [
        ('PROJECTS', projects_csv(summary['projects'])),
        ('COSTS', costs_csv(summary['costs'])),
        ('STOCK', stock_csv(summary['stock'])),
    ]
    return '\n'.join(f"{title}\n{content}" for title, content in sections)
