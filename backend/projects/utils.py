import logging

from backend.core import notifications
from backend.core.exceptions import ResourceNotFound
from .models import Project

logger = logging.getLogger('backend.projects')


def get_visible_project(user, pk):
    """Project by id restricted to what the user can see (404 otherwise)"""
    project = Project.objects.visible_to(user).filter(pk=pk).first()
    if project is None:
        raise ResourceNotFound(f"Project not found with ID: {pk}")
    return project


def refresh_project_metrics(project, progress=True, cost=True):
    """Recalculate derived progress and realized cost, alerting on a budget overrun"""
    if progress:
        project.recalculate_progress()
    if cost:
        crossed_budget = project.recalculate_realized_cost()
        if crossed_budget:
            logger.warning(f"Project {project.name} exceeded its budget: {project.realized_cost} > {project.total_budget}")
            if project.created_by:
                notifications.notify_budget_overrun(project, project.created_by)
    return project
