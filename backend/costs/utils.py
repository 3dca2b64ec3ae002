from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Sum

from backend.core.exceptions import ResourceNotFound
from backend.projects.models import Project
from backend.tasks.models import Task

ZERO = Decimal('0.00')


def get_visible_task(user, task_id):
    """Task by id, limited to projects the user can see"""
    task = Task.objects.select_related('project', 'assigned_user').filter(
        pk=task_id, project__in=Project.objects.visible_to(user)
    ).first()
    if task is None:
        raise ResourceNotFound(f"Task not found with ID: {task_id}")
    return task


def budget_usage_percentage(realized, budget):
    if not budget or budget <= 0:
        return ZERO
    ratio = ((realized or ZERO) / budget).quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP)
    return (ratio * 100).quantize(ZERO)


def project_budget(project):
    """Budget position of a project together with its cost breakdown by kind"""
    tasks = project.tasks.all()
    sums = tasks.aggregate(
        labor=Sum('labor_cost'), material=Sum('material_cost'), equipment=Sum('equipment_cost')
    )
    total_tasks = tasks.count()
    completed_tasks = tasks.filter(status=Task.STATUS_CONCLUIDA).count()

    budget = project.total_budget or ZERO
    realized = project.realized_cost or ZERO
    has_budget = budget > 0

    return {
        'project_id': project.id,
        'project_name': project.name,
        'total_budget': budget,
        'realized_cost': realized,
        'budget_variance': budget - realized if has_budget else ZERO,
        'budget_usage_percentage': budget_usage_percentage(realized, budget),
        'progress_percentage': project.progress_percentage,
        'is_over_budget': has_budget and realized > budget,
        'total_labor_cost': sums['labor'] or ZERO,
        'total_material_cost': sums['material'] or ZERO,
        'total_equipment_cost': sums['equipment'] or ZERO,
        'total_tasks': total_tasks,
        'completed_tasks': completed_tasks,
        'pending_tasks': total_tasks - completed_tasks,
    }
