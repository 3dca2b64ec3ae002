"""
Test suite for the reports module
Tests: report builders, dashboard, JSON/CSV/PDF report endpoints
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.core.models import ROLE_ADMIN, ROLE_MANAGER, ROLE_USER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.material_requests.models import MaterialRequest
from backend.projects.models import Project
from backend.reports import csv_export, services
from backend.reports.pdf import PDFReportGenerator
from backend.tasks.models import Task


class ReportBuilderTests(TestCase):
    """Test the plain-dict report builders"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.today = timezone.localdate()
        self.project = TestDataFactory.create_project(
            created_by=self.admin,
            total_budget=Decimal('1000.00'),
            start_date_actual=self.today - timedelta(days=10),
            status=Project.STATUS_EM_ANDAMENTO,
        )

    def test_percentage(self):
        """Test percentage rounding"""
        self.assertEqual(services.percentage(1, 3), 33.33)
        self.assertEqual(services.percentage(2, 3), 66.67)
        self.assertEqual(services.percentage(5, 0), 0.0)

    def test_project_report_progress_from_tasks(self):
        """Progress is completed tasks over total tasks, truncated"""
        TestDataFactory.create_task(self.project, status=Task.STATUS_CONCLUIDA, progress_percentage=100)
        TestDataFactory.create_task(self.project)
        TestDataFactory.create_task(self.project)
        report = services.project_report(self.project, self.today)
        self.assertEqual(report['progress_percentage'], 33)
        self.assertEqual(report['total_tasks'], 3)
        self.assertEqual(report['completed_tasks'], 1)
        self.assertEqual(report['task_status_summary'][Task.STATUS_A_FAZER], 2)

    def test_project_report_without_tasks_uses_stored_progress(self):
        """Test the stored progress is used when there are no tasks"""
        self.project.progress_percentage = Decimal('42.00')
        report = services.project_report(self.project, self.today)
        self.assertEqual(report['progress_percentage'], 42)
        self.assertEqual(report['team_size'], 1)

    def test_delayed_and_days_remaining(self):
        """Test delay flag and days remaining"""
        self.project.end_date_planned = self.today - timedelta(days=2)
        report = services.project_report(self.project, self.today)
        self.assertTrue(report['delayed'])
        self.assertEqual(report['days_remaining'], -2)
        self.project.end_date_actual = self.today
        report = services.project_report(self.project, self.today)
        self.assertFalse(report['delayed'])
        self.assertEqual(report['days_remaining'], 0)

    def test_performance_metrics(self):
        """Test project performance metrics"""
        TestDataFactory.create_task(
            self.project, status=Task.STATUS_CONCLUIDA, progress_percentage=100,
            end_date_planned=self.today, end_date_actual=self.today - timedelta(days=1),
            estimated_hours=10, actual_hours=12,
        )
        TestDataFactory.create_task(
            self.project, status=Task.STATUS_CONCLUIDA, progress_percentage=100,
            end_date_planned=self.today - timedelta(days=3), end_date_actual=self.today,
            estimated_hours=10, actual_hours=10,
        )
        metrics = services.project_report(self.project, self.today)['performance_metrics']
        self.assertEqual(metrics['on_time_completion_rate'], 50.0)
        self.assertEqual(metrics['team_efficiency'], 100.0)
        self.assertEqual(metrics['hours_variance_percentage'], 10.0)
        self.assertEqual(metrics['productivity'], 0.2)

    def test_cost_report(self):
        """Test the cost report"""
        TestDataFactory.create_task(
            self.project, labor_cost=Decimal('300.00'), material_cost=Decimal('500.00'), equipment_cost=Decimal('400.00')
        )
        self.project.recalculate_realized_cost()
        report = services.cost_report(self.project, self.today)
        self.assertEqual(report['material_costs'], Decimal('500.00'))
        self.assertEqual(report['service_costs'], Decimal('700.00'))
        self.assertEqual(report['remaining_budget'], Decimal('-200.00'))
        self.assertEqual(report['budget_utilization_percent'], 120.0)
        self.assertTrue(report['over_budget'])

    def test_stock_report_low_stock_includes_minimum(self):
        """Test the stock report flags items at the minimum"""
        material = TestDataFactory.create_material(unit_price='2.50', current_stock='10', minimum_stock='10')
        report = services.stock_report(material, self.today)
        self.assertTrue(report['low_stock'])
        self.assertEqual(report['total_value'], Decimal('25.00'))

    def test_dashboard(self):
        """Test dashboard counters"""
        TestDataFactory.create_project(created_by=self.admin, status=Project.STATUS_CONCLUIDO)
        TestDataFactory.create_task(self.project, end_date_planned=self.today - timedelta(days=1))
        material = TestDataFactory.create_material(current_stock='1', minimum_stock='5')
        TestDataFactory.create_material_request(self.project, self.admin, items=[(material, 1)])
        data = services.dashboard(self.today)
        self.assertEqual(data['total_projects'], 2)
        self.assertEqual(data['active_projects'], 1)
        self.assertEqual(data['completed_projects'], 1)
        self.assertEqual(data['overdue_tasks'], 1)
        self.assertEqual(data['low_stock_materials'], 1)
        self.assertEqual(data['pending_material_requests'], 1)
        self.assertEqual(data['monthly_stats']['projects_created'], 2)
        self.assertEqual(data['total_budget_allocated'], Decimal('101000.00'))


class ReportExportTests(TestCase):
    """Test CSV and PDF rendering"""

    def test_csv_quotes_header_only(self):
        """Test only the header row is fully quoted"""
        content = csv_export.rows_to_csv(
            [{'id': 1, 'name': 'Obra, Fase 1', 'value': Decimal('10.5')}],
            [('id', 'ID'), ('name', 'Name'), ('value', 'Value')],
        )
        lines = content.splitlines()
        self.assertEqual(lines[0], '"ID","Name","Value"')
        self.assertEqual(lines[1], '1,"Obra, Fase 1",10.50')

    def test_csv_booleans_and_empty_values(self):
        """Test CSV rendering of booleans and empty values"""
        content = csv_export.rows_to_csv([{'flag': True, 'missing': None}], [('flag', 'Flag'), ('missing', 'Missing')])
        self.assertEqual(content.splitlines()[1], 'Yes,')

    def test_pdf_documents(self):
        """Test PDF rendering of the summary and project reports"""
        admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        project = TestDataFactory.create_project(created_by=admin)
        TestDataFactory.create_task(project, labor_cost=Decimal('100.00'))
        material = TestDataFactory.create_material()
        summary = services.summary_report([project], [material])
        generator = PDFReportGenerator()
        self.assertTrue(generator.summary_pdf(summary).startswith(b'%PDF'))
        self.assertTrue(generator.projects_pdf(summary['projects'], detailed=True).startswith(b'%PDF'))

    def test_pdf_with_markup_in_names(self):
        """Test names containing markup characters are rendered as text"""
        admin = TestDataFactory.create_user(role=ROLE_ADMIN, full_name='Ana <b>Souza')
        project = TestDataFactory.create_project(created_by=admin, name='Tower <A> & Co', client='<Client & Sons>')
        TestDataFactory.create_task(project, title='Lay <bricks> & mortar', labor_cost=Decimal('10.00'))
        material = TestDataFactory.create_material(name='Steel <para> & wire', current_stock='1', minimum_stock='5')
        summary = services.summary_report([project], [material])
        generator = PDFReportGenerator()
        self.assertTrue(generator.projects_pdf(summary['projects'], detailed=True).startswith(b'%PDF'))
        self.assertTrue(generator.summary_pdf(summary).startswith(b'%PDF'))

    def test_pdf_with_no_rows(self):
        """Test PDF rendering without rows"""
        generator = PDFReportGenerator()
        self.assertTrue(generator.costs_pdf([]).startswith(b'%PDF'))
        self.assertTrue(generator.stock_pdf([]).startswith(b'%PDF'))


class ReportAPITests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=self.admin, name='Edifício Aurora', team=[self.worker])
        TestDataFactory.create_task(self.project, labor_cost=Decimal('250.00'))
        self.material = TestDataFactory.create_material(name='Cimento')
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)

    def test_dashboard_any_role(self):
        """Test the dashboard is open to every role"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.get('/api/v1/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_projects'], 1)

    def test_project_report_json(self):
        """Test the project report as JSON"""
        response = self.client.get('/api/v1/reports/projects/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['name'] for row in response.data], ['Edifício Aurora'])

    def test_project_report_only_visible(self):
        """Test the project report respects visibility"""
        TestDataFactory.create_project(created_by=self.manager)
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.get('/api/v1/reports/projects/')
        self.assertEqual(len(response.data), 1)
        other = TestDataFactory.create_project(created_by=self.manager)
        response = client.get(f'/api/v1/reports/projects/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_project_report_csv(self):
        """CSV download carries an attachment header and quoted column titles"""
        response = self.client.get(f'/api/v1/reports/projects/{self.project.id}/?format=csv')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response['Content-Type'].startswith('text/csv'))
        self.assertIn('attachment; filename="projects_report_', response['Content-Disposition'])
        content = response.content.decode('utf-8')
        self.assertTrue(content.startswith('"ID","Name"'))
        self.assertIn('Edifício Aurora', content)

    def test_project_report_pdf(self):
        """Test the project report as PDF"""
        response = self.client.get(f'/api/v1/reports/projects/{self.project.id}/?format=pdf')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_project_report_pdf_with_markup_name(self):
        """Test the PDF report for a project whose name contains markup characters"""
        project = TestDataFactory.create_project(created_by=self.admin, name='Tower <A> & Co')
        response = self.client.get(f'/api/v1/reports/projects/{project.id}/?format=pdf')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_unsupported_format(self):
        """Test an unsupported format returns 400"""
        response = self.client.get('/api/v1/reports/projects/?format=xml')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cost_report(self):
        """Test the cost report endpoint as JSON and CSV"""
        self.project.recalculate_realized_cost()
        response = self.client.get(f'/api/v1/reports/costs/{self.project.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['total_costs'], Decimal('250.00'))
        response = self.client.get('/api/v1/reports/costs/?format=csv')
        self.assertIn('"Service Costs"', response.content.decode('utf-8'))

    def test_cost_report_missing_project(self):
        """Test the cost report for a missing project"""
        response = self.client.get('/api/v1/reports/costs/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_stock_report(self):
        """Test the stock report as JSON and PDF"""
        response = self.client.get(f'/api/v1/reports/stock/{self.material.id}/')
        self.assertEqual(response.data[0]['material_name'], 'Cimento')
        response = self.client.get('/api/v1/reports/stock/?format=pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_summary_report(self):
        """Test the summary report sections"""
        response = self.client.get('/api/v1/reports/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['projects']), 1)
        self.assertEqual(len(response.data['stock']), 1)
        response = self.client.get('/api/v1/reports/summary/?format=csv')
        content = response.content.decode('utf-8')
        for section in ('PROJECTS', 'COSTS', 'STOCK'):
            self.assertIn(section, content)

    def test_user_role_cannot_read_cost_or_stock(self):
        """Test the USER role cannot read cost or stock reports"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        self.assertEqual(client.get('/api/v1/reports/costs/').status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(client.get('/api/v1/reports/stock/').status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(client.get('/api/v1/reports/summary/').status_code, status.HTTP_403_FORBIDDEN)

    def test_requires_authentication(self):
        """Test reports require authentication"""
        self.client.logout()
        self.assertEqual(self.client.get('/api/v1/dashboard/').status_code, status.HTTP_401_UNAUTHORIZED)
