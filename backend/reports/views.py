import logging

from django.http import HttpResponse
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.cache_utils import (
    DASHBOARD_CACHE_TTL, DASHBOARD_PREFIX, REPORTS_CACHE_TTL, REPORTS_PREFIX, get_or_compute,
)
from backend.core.exceptions import ResourceNotFound, SGPCException
from backend.core.permissions import IsAdminOrManager
from backend.materials.models import Material
from backend.projects.models import Project
from backend.projects.utils import get_visible_project
from . import csv_export, services
from .pdf import PDFReportGenerator

logger = logging.getLogger('backend.reports')

FORMAT_JSON = 'json'
FORMAT_CSV = 'csv'
FORMAT_PDF = 'pdf'
SUPPORTED_FORMATS = (FORMAT_JSON, FORMAT_CSV, FORMAT_PDF)


def _requested_format(request):
    report_format = (request.query_params.get('format') or FORMAT_JSON).lower()
    if report_format not in SUPPORTED_FORMATS:
        raise SGPCException(f"Unsupported format: {report_format}. Use json, csv or pdf.")
    return report_format


def _filename(kind, extension):
    return f"{kind}_report_{timezone.localtime().strftime('%Y%m%d_%H%M%S')}.{extension}"


def _render(request, kind, data, to_csv, to_pdf):
    """Send the report as JSON, or as a CSV/PDF attachment"""
    report_format = _requested_format(request)
    if report_format == FORMAT_JSON:
        return Response(data)

    if report_format == FORMAT_CSV:
        response = HttpResponse(to_csv(data), content_type='text/csv; charset=utf-8')
    else:
        response = HttpResponse(to_pdf(data), content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{_filename(kind, report_format)}"'
    logger.info(f"{kind} report exported as {report_format} for {request.user.email}")
    return response


def _cached(request, kind, compute, *args):
    return get_or_compute(REPORTS_PREFIX, REPORTS_CACHE_TTL, compute, kind, request.user.pk, *args)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard(request):
    data = get_or_compute(DASHBOARD_PREFIX, DASHBOARD_CACHE_TTL, services.dashboard)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_report(request, project_id=None):
    """Detailed report of the visible projects, or of one project"""
    _requested_format(request)
    if project_id is not None:
        project = get_visible_project(request.user, project_id)
        data = _cached(request, 'project', lambda: [services.project_report(project)], project_id)
    else:
        def compute():
            projects = Project.objects.visible_to(request.user).select_related('created_by').order_by('name')
            return [services.project_report(project) for project in projects]
        data = _cached(request, 'projects', compute)

    generator = PDFReportGenerator()
    return _render(
        request, 'projects', data, csv_export.projects_csv,
        lambda rows: generator.projects_pdf(rows, detailed=project_id is not None),
    )


def _get_project(project_id):
    project = Project.objects.filter(pk=project_id).first()
    if project is None:
        raise ResourceNotFound(f"Project not found with ID: {project_id}")
    return project


def _get_material(material_id):
    material = Material.objects.filter(pk=material_id).first()
    if material is None:
        raise ResourceNotFound(f"Material not found with ID: {material_id}")
    return material


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def cost_report(request, project_id=None):
    _requested_format(request)
    if project_id is not None:
        project = _get_project(project_id)
        data = _cached(request, 'cost', lambda: [services.cost_report(project)], project_id)
    else:
        data = _cached(
            request, 'costs',
            lambda: [services.cost_report(project) for project in Project.objects.order_by('name')],
        )
    return _render(request, 'costs', data, csv_export.costs_csv, PDFReportGenerator().costs_pdf)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def stock_report(request, material_id=None):
    _requested_format(request)
    if material_id is not None:
        material = _get_material(material_id)
        data = _cached(request, 'material', lambda: [services.stock_report(material)], material_id)
    else:
        data = _cached(
            request, 'stock',
            lambda: [services.stock_report(material) for material in Material.objects.active()],
        )
    return _render(request, 'stock', data, csv_export.stock_csv, PDFReportGenerator().stock_pdf)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def summary_report(request):
    """Projects, costs and stock in one report"""
    _requested_format(request)
    data = _cached(
        request, 'summary',
        lambda: services.summary_report(
            list(Project.objects.select_related('created_by').order_by('name')),
            list(Material.objects.active()),
        ),
    )
    return _render(request, 'summary', data, csv_export.summary_csv, PDFReportGenerator().summary_pdf)
