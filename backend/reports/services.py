"""
Report and dashboard builders.
Every builder returns plain dicts so the same data feeds JSON, CSV and PDF output.
"""
from decimal import Decimal, ROUND_HALF_UP

from django.contrib.auth import get_user_model
from django.db.models import Avg, Count, Sum
from django.utils import timezone

from backend.materials.models import Material
from backend.material_requests.models import MaterialRequest
from backend.projects.models import Project
from backend.tasks.models import Task

User = get_user_model()

ZERO = Decimal('0.00')


def percentage(part, whole):
    """part/whole rounded half-up to 4 places, as a percentage"""
    if not whole or whole <= 0:
        return 0.0
    ratio = (Decimal(part) / Decimal(whole)).quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP)
    return float(ratio * 100)


def _progress(project, total_tasks, completed_tasks):
    if total_tasks == 0:
        return int(project.progress_percentage or 0)
    return completed_tasks * 100 // total_tasks


def _is_delayed(project, today):
    return bool(project.end_date_planned and today > project.end_date_planned and project.end_date_actual is None)


def _days_remaining(project, today):
    if project.end_date_planned is None or project.end_date_actual is not None:
        return 0
    return (project.end_date_planned - today).days


def _task_summary(task):
    return {
        'id': task.id,
        'title': task.title,
        'status': task.status,
        'progress_percentage': task.progress_percentage,
        'priority': task.priority,
        'priority_description': task.get_priority_display(),
        'start_date_planned': task.start_date_planned,
        'end_date_planned': task.end_date_planned,
        'start_date_actual': task.start_date_actual,
        'end_date_actual': task.end_date_actual,
        'estimated_hours': task.estimated_hours,
        'actual_hours': task.actual_hours,
        'assigned_user_name': task.assigned_user.full_name if task.assigned_user else 'Unassigned',
        'labor_cost': task.labor_cost,
        'material_cost': task.material_cost,
        'equipment_cost': task.equipment_cost,
        'total_cost': task.total_cost,
        'is_overdue': task.is_overdue,
        'days_overdue': task.days_overdue(),
    }


def _team_members(project, tasks):
    members = []
    for user in project.team_members.all().order_by('full_name'):
        assigned = [task for task in tasks if task.assigned_user_id == user.id]
        completed = [task for task in assigned if task.status == Task.STATUS_CONCLUIDA]
        members.append({
            'id': user.id,
            'full_name': user.full_name,
            'email': user.email,
            'role': user.primary_role,
            'assigned_tasks_count': len(assigned),
            'completed_tasks_count': len(completed),
            'task_completion_rate': percentage(len(completed), len(assigned)),
            'status': 'ACTIVE' if user.is_active else 'INACTIVE',
        })
    return members


def _task_status_summary(tasks):
    counts = {value: 0 for value in Task.STATUS_VALUES}
    for task in tasks:
        counts[task.status] += 1
    counts['overdue'] = sum(1 for task in tasks if task.is_overdue)
    return counts


def _cost_breakdown(tasks):
    labor = sum((task.labor_cost for task in tasks), ZERO)
    material = sum((task.material_cost for task in tasks), ZERO)
    equipment = sum((task.equipment_cost for task in tasks), ZERO)
    total = labor + material + equipment
    return {
        'total_labor_cost': labor,
        'total_material_cost': material,
        'total_equipment_cost': equipment,
        'total_cost': total,
        'labor_percentage': percentage(labor, total),
        'material_percentage': percentage(material, total),
        'equipment_percentage': percentage(equipment, total),
    }


def _performance_metrics(project, tasks, today):
    schedule_variance = None
    if project.end_date_planned and project.end_date_actual:
        schedule_variance = (project.end_date_actual - project.end_date_planned).days

    completed = [task for task in tasks if task.status == Task.STATUS_CONCLUIDA]
    on_time = [
        task for task in completed
        if task.end_date_planned is None or task.end_date_actual is None or task.end_date_actual <= task.end_date_planned
    ]

    productivity = 0.0
    if project.start_date_actual and completed:
        days = (today - project.start_date_actual).days
        if days > 0:
            productivity = round(len(completed) / days, 4)

    estimated = sum(task.estimated_hours or 0 for task in tasks)
    actual = sum(task.actual_hours or 0 for task in tasks)

    return {
        'schedule_variance_days': schedule_variance,
        'budget_variance': project.budget_variance,
        'team_efficiency': percentage(len(completed), len(tasks)),
        'on_time_completion_rate': percentage(len(on_time), len(completed)),
        'productivity': productivity,
        'total_estimated_hours': estimated,
        'total_actual_hours': actual,
        'hours_variance_percentage': percentage(actual - estimated, estimated),
    }


def project_report(project, today=None):
    today = today or timezone.localdate()
    tasks = list(project.tasks.select_related('assigned_user'))
    total_tasks = len(tasks)
    completed_tasks = sum(1 for task in tasks if task.status == Task.STATUS_CONCLUIDA)
    return {
        'id': project.id,
        'name': project.name,
        'client': project.client,
        'description': project.description,
        'start_date_planned': project.start_date_planned,
        'end_date_planned': project.end_date_planned,
        'start_date_actual': project.start_date_actual,
        'end_date_actual': project.end_date_actual,
        'status': project.status,
        'status_description': project.get_status_display(),
        'progress_percentage': _progress(project, total_tasks, completed_tasks),
        'total_budget': project.total_budget or ZERO,
        'used_budget': project.realized_cost or ZERO,
        'total_tasks': total_tasks,
        'completed_tasks': completed_tasks,
        'delayed': _is_delayed(project, today),
        'days_remaining': _days_remaining(project, today),
        'created_by_name': project.created_by.full_name if project.created_by else 'N/A',
        'created_at': project.created_at.date() if project.created_at else None,
        'team_size': project.team_members.count(),
        'team_members': _team_members(project, tasks),
        'tasks': [_task_summary(task) for task in tasks],
        'task_status_summary': _task_status_summary(tasks),
        'cost_breakdown': _cost_breakdown(tasks),
        'performance_metrics': _performance_metrics(project, tasks, today),
    }


def cost_report(project, today=None):
    """Budget position; material costs come from tasks, services are labor plus equipment"""
    sums = project.tasks.aggregate(
        labor=Sum('labor_cost'), material=Sum('material_cost'), equipment=Sum('equipment_cost')
    )
    budget = project.total_budget or ZERO
    total = project.realized_cost or ZERO
    return {
        'project_id': project.id,
        'project_name': project.name,
        'client': project.client,
        'total_budget': budget,
        'material_costs': sums['material'] or ZERO,
        'service_costs': (sums['labor'] or ZERO) + (sums['equipment'] or ZERO),
        'total_costs': total,
        'remaining_budget': budget - total,
        'budget_utilization_percent': percentage(total, budget),
        'over_budget': total > budget,
        'report_date': today or timezone.localdate(),
    }


def stock_report(material, today=None):
    current = material.current_stock or Decimal('0')
    minimum = material.minimum_stock or Decimal('0')
    return {
        'material_id': material.id,
        'material_name': material.name,
        'unit_of_measure': material.unit_of_measure,
        'current_stock': current,
        'minimum_stock': minimum,
        'low_stock': current <= minimum,
        'unit_cost': material.unit_price,
        'total_value': (current * material.unit_price).quantize(ZERO),
        'supplier': material.supplier,
        'report_date': today or timezone.localdate(),
    }


def summary_report(projects, materials, today=None):
    today = today or timezone.localdate()
    costs = [cost_report(project, today) for project in projects]
    stock = [stock_report(material, today) for material in materials]
    return {
        'generated_at': today,
        'projects': [project_report(project, today) for project in projects],
        'costs': costs,
        'stock': stock,
        'totals': {
            'total_budget': sum((row['total_budget'] for row in costs), ZERO),
            'total_costs': sum((row['total_costs'] for row in costs), ZERO),
            'over_budget_projects': sum(1 for row in costs if row['over_budget']),
            'stock_value': sum((row['total_value'] for row in stock), ZERO),
            'low_stock_materials': sum(1 for row in stock if row['low_stock']),
        },
    }


def dashboard(today=None):
    """Aggregated counters across projects, tasks, materials, requests and users"""
    today = today or timezone.localdate()
    first_of_month = today.replace(day=1)

    projects = Project.objects.all()
    project_status = {value: 0 for value in Project.STATUS_VALUES}
    for row in projects.values('status').annotate(total=Count('id')):
        project_status[row['status']] = row['total']
    over_budget = sum(1 for project in projects.only('total_budget', 'realized_cost') if project.is_over_budget)
    budget = projects.aggregate(allocated=Sum('total_budget'), realized=Sum('realized_cost'), progress=Avg('progress_percentage'))

    tasks = Task.objects.all()
    task_status = {value: 0 for value in Task.STATUS_VALUES}
    for row in tasks.values('status').annotate(total=Count('id')):
        task_status[row['status']] = row['total']

    materials = Material.objects.active()
    users = User.objects.all()

    average_progress = budget['progress']
    return {
        'total_projects': projects.count(),
        'projects_by_status': project_status,
        'active_projects': project_status[Project.STATUS_EM_ANDAMENTO],
        'completed_projects': project_status[Project.STATUS_CONCLUIDO],
        'paused_projects': project_status[Project.STATUS_PAUSADO],
        'cancelled_projects': project_status[Project.STATUS_CANCELADO],
        'delayed_projects': projects.delayed(today).count(),
        'over_budget_projects': over_budget,
        'total_tasks': tasks.count(),
        'tasks_by_status': task_status,
        'overdue_tasks': tasks.overdue(today).count(),
        'total_materials': materials.count(),
        'low_stock_materials': materials.low_stock().count(),
        'pending_material_requests': MaterialRequest.objects.filter(status=MaterialRequest.STATUS_PENDENTE).count(),
        'total_users': users.count(),
        'active_users': users.filter(is_active=True).count(),
        'total_budget_allocated': budget['allocated'] or ZERO,
        'total_realized_cost': budget['realized'] or ZERO,
        'average_project_progress': round(float(average_progress), 2) if average_progress is not None else 0.0,
        'monthly_stats': {
            'projects_created': projects.filter(created_at__date__gte=first_of_month).count(),
            'tasks_completed': tasks.filter(status=Task.STATUS_CONCLUIDA, end_date_actual__gte=first_of_month).count(),
            'material_requests_approved': MaterialRequest.objects.filter(
                status=MaterialRequest.STATUS_APROVADA, approved_at__date__gte=first_of_month
            ).count(),
        },
        'generated_at': timezone.now(),
    }
