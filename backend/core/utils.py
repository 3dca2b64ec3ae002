"""Utility functions for audit logging, pagination and file uploads"""
import logging
import os
from datetime import date, datetime
from decimal import Decimal

from django.conf import settings
from django.core.paginator import Paginator
from django.forms.models import model_to_dict
from rest_framework.response import Response

from .exceptions import SGPCException
from .models import AuditLog

logger = logging.getLogger('backend.core')

ALLOWED_ATTACHMENT_EXTENSIONS = [
    '.jpg', '.jpeg', '.png', '.gif', '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.txt'
]


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if hasattr(value, 'pk'):
        return value.pk
    return value


def snapshot(instance, exclude=('password',)):
    """Plain-JSON copy of a model's concrete fields for audit diffs"""
    if instance is None:
        return None
    data = model_to_dict(instance, exclude=list(exclude))
    return {key: _json_safe(value) for key, value in data.items() if not hasattr(value, 'read')}


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (CREATE, UPDATE, DELETE, APPROVE, REJECT, ...)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary with the "old" and "new" values
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object (e.g., project name, task title)
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        if audit_user is not None and not audit_user.is_authenticated:
            audit_user = None

        ip_address = get_client_ip(request) if request else None

        if not action or not model_name or not object_id:
            logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
            return None

        return AuditLog.objects.create(
            user=audit_user,
            user_email=audit_user.email if audit_user else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            changes=changes or {},
            ip_address=ip_address
        )
    except Exception as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def paginate(request, queryset, serializer_class, default_limit=15, context=None):
    """Page a queryset with ?page= and ?limit= and wrap it in the list envelope"""
    try:
        page = int(request.query_params.get('page', 1))
        limit = int(request.query_params.get('limit', default_limit))
    except (TypeError, ValueError):
        page, limit = 1, default_limit
    limit = max(1, min(limit, 200))

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)

    serializer = serializer_class(page_obj, many=True, context=context or {'request': request})
    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })


def validate_upload(uploaded_file):
    """Reject empty, oversized, traversal-named or disallowed uploads"""
    if uploaded_file is None or uploaded_file.size == 0:
        raise SGPCException('File cannot be empty.')

    max_size = settings.SGPC_UPLOAD_MAX_SIZE
    if uploaded_file.size > max_size:
        raise SGPCException(f"File too large. Maximum size: {max_size // 1024 // 1024}MB")

    filename = uploaded_file.name or ''
    if not filename:
        raise SGPCException('File name cannot be empty.')
    if '..' in filename:
        raise SGPCException(f"Invalid file name: {filename}")

    extension = os.path.splitext(filename)[1].lower()
    if extension not in ALLOWED_ATTACHMENT_EXTENSIONS:
        raise SGPCException(f"File type not allowed: {extension}")
    return os.path.basename(filename)
