"""
Cache invalidation signals
Automatically invalidate dashboard and report cache when domain data changes
"""
from django.db.models.signals import m2m_changed, post_save, post_delete
from django.dispatch import receiver
import logging

from .cache_utils import invalidate_dashboard_cache, invalidate_reports_cache

logger = logging.getLogger(__name__)

TRACKED_MODELS = {
    'Project', 'Task', 'TaskService', 'Service', 'Material', 'StockMovement',
    'MaterialRequest', 'User',
}


@receiver([post_save, post_delete])
def invalidate_domain_cache(sender, instance, **kwargs):
    """Drop cached dashboard/report payloads when a tracked model changes"""
    if sender.__name__ not in TRACKED_MODELS:
        return
    try:
        invalidate_dashboard_cache()
        invalidate_reports_cache()
    except Exception as e:
        logger.warning(f"Error invalidating cache after {sender.__name__} change: {e}")


@receiver(m2m_changed)
def invalidate_on_relation_change(sender, instance, action, **kwargs):
    """Project team and user role changes alter visibility and team stats in cached reports"""
    if action not in ('post_add', 'post_remove', 'post_clear'):
        return
    if type(instance).__name__ not in TRACKED_MODELS:
        return
    try:
        invalidate_dashboard_cache()
        invalidate_reports_cache()
    except Exception as e:
        logger.warning(f"Error invalidating cache after {sender.__name__} change: {e}")
