"""
Test suite for the costs module
Tests: service catalog, task services, cost recalculation, progress updates, project budgets
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from backend.core.models import ROLE_ADMIN, ROLE_MANAGER, ROLE_USER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.costs.models import TaskService, recalculate_task_costs
from backend.costs.utils import budget_usage_percentage, project_budget
from backend.tasks.models import Task


class CostCalculationTests(TestCase):
    """Test service cost arithmetic"""

    def setUp(self):
        self.project = TestDataFactory.create_project(created_by=TestDataFactory.create_user(role=ROLE_ADMIN))
        self.task = TestDataFactory.create_task(self.project)
        self.service = TestDataFactory.create_service(labor='10.00', material='5.00', equipment='2.00')

    def test_task_service_totals(self):
        """Test task service line totals"""
        item = TaskService.objects.create(task=self.task, service=self.service, quantity=Decimal('3'))
        self.assertEqual(item.total_labor_cost, Decimal('30.00'))
        self.assertEqual(item.total_material_cost, Decimal('15.00'))
        self.assertEqual(item.total_equipment_cost, Decimal('6.00'))
        self.assertEqual(item.total_cost, Decimal('51.00'))

    def test_override_replaces_labor_only(self):
        """Test the unit price override replaces the labor cost only"""
        item = TaskService.objects.create(
            task=self.task, service=self.service, quantity=Decimal('3'), unit_cost_override=Decimal('20.00')
        )
        self.assertEqual(item.total_labor_cost, Decimal('60.00'))
        self.assertEqual(item.total_material_cost, Decimal('15.00'))

    def test_recalculate_task_costs(self):
        """Test task costs are rebuilt from its services"""
        other = TestDataFactory.create_service(labor='1.00', material='1.00', equipment='1.00')
        TaskService.objects.create(task=self.task, service=self.service, quantity=Decimal('2'))
        TaskService.objects.create(task=self.task, service=other, quantity=Decimal('4'))
        recalculate_task_costs(self.task)
        self.task.refresh_from_db()
        self.assertEqual(self.task.labor_cost, Decimal('24.00'))
        self.assertEqual(self.task.material_cost, Decimal('14.00'))
        self.assertEqual(self.task.equipment_cost, Decimal('8.00'))
        self.assertEqual(self.task.total_cost, Decimal('46.00'))

    def test_budget_usage_percentage(self):
        """Test project budget usage percentage"""
        self.assertEqual(budget_usage_percentage(Decimal('50'), Decimal('200')), Decimal('25.00'))
        self.assertEqual(budget_usage_percentage(Decimal('1'), Decimal('3')), Decimal('33.33'))
        self.assertEqual(budget_usage_percentage(Decimal('10'), Decimal('0')), Decimal('0.00'))
        self.assertEqual(budget_usage_percentage(Decimal('10'), None), Decimal('0.00'))

    def test_project_budget_without_budget(self):
        """Test budget figures for a project without a budget"""
        project = TestDataFactory.create_project(total_budget=None)
        data = project_budget(project)
        self.assertEqual(data['budget_variance'], Decimal('0.00'))
        self.assertFalse(data['is_over_budget'])


class ServiceAPITests(TestCase):
    """Test service catalog endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.client = AuthenticatedAPIClient().authenticate_user(self.manager)

    def test_create_service(self):
        """Test creating a service"""
        response = self.client.post('/api/v1/cost/services/', {
            'name': 'Pintura',
            'unit_of_measurement': 'm2',
            'unit_labor_cost': '12.50',
            'unit_material_cost': '8.00',
            'unit_equipment_cost': '1.50',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_unit_cost'], '22.00')

    def test_duplicate_name_is_case_insensitive(self):
        """Test service names are unique ignoring case"""
        TestDataFactory.create_service(name='Pintura')
        response = self.client.post('/api/v1/cost/services/', {
            'name': 'PINTURA', 'unit_of_measurement': 'm2',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_negative_cost_rejected(self):
        """Test negative unit costs are rejected"""
        response = self.client.post('/api/v1/cost/services/', {
            'name': 'Reboco', 'unit_of_measurement': 'm2', 'unit_labor_cost': '-1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_user_role_cannot_create(self):
        """Test the USER role cannot create services"""
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user(role=ROLE_USER))
        response = client.post('/api/v1/cost/services/', {'name': 'X', 'unit_of_measurement': 'un'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_only_active(self):
        """Test only active services are listed"""
        TestDataFactory.create_service(name='Ativo')
        TestDataFactory.create_service(name='Inativo', is_active=False)
        response = self.client.get('/api/v1/cost/services/')
        self.assertEqual([item['name'] for item in response.data], ['Ativo'])

    def test_search(self):
        TestDataFactory.create_service(name='Pintura externa')
        TestDataFactory.create_service(name='Alvenaria')
        response = self.client.get('/api/v1/cost/services/search/?name=pint')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(self.client.get('/api/v1/cost/services/search/').status_code, status.HTTP_400_BAD_REQUEST)


class TaskServiceAPITests(TestCase):
    """Test linking services to tasks"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(
            created_by=self.admin, team=[self.worker], total_budget=Decimal('100.00')
        )
        self.task = TestDataFactory.create_task(self.project)
        self.service = TestDataFactory.create_service(labor='10.00', material='5.00', equipment='2.00')
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)
        self.url = f'/api/v1/cost/tasks/{self.task.id}/services/'

    def test_add_service_recalculates_task_and_project(self):
        """Test adding a service updates task and project costs"""
        response = self.client.post(self.url, {'service_id': self.service.id, 'quantity': '2'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_cost'], '34.00')
        self.task.refresh_from_db()
        self.assertEqual(self.task.total_cost, Decimal('34.00'))
        self.project.refresh_from_db()
        self.assertEqual(self.project.realized_cost, Decimal('34.00'))

    def test_add_service_twice_conflict(self):
        """Test adding the same service twice returns 409"""
        TaskService.objects.create(task=self.task, service=self.service, quantity=Decimal('1'))
        response = self.client.post(self.url, {'service_id': self.service.id, 'quantity': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_add_inactive_service(self):
        """Test inactive services cannot be added"""
        inactive = TestDataFactory.create_service(is_active=False)
        response = self.client.post(self.url, {'service_id': inactive.id, 'quantity': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Business rule violation')

    def test_add_unknown_service(self):
        """Test adding an unknown service returns 404"""
        response = self.client.post(self.url, {'service_id': 999999, 'quantity': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_zero_quantity_rejected(self):
        """Test zero quantity is rejected"""
        response = self.client.post(self.url, {'service_id': self.service.id, 'quantity': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_user_role_cannot_add(self):
        """Test the USER role cannot add services to tasks"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.post(self.url, {'service_id': self.service.id, 'quantity': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(client.get(self.url).status_code, status.HTTP_200_OK)

    def test_remove_service(self):
        """Test removing a service from a task"""
        self.client.post(self.url, {'service_id': self.service.id, 'quantity': '2'}, format='json')
        response = self.client.delete(f'{self.url}{self.service.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.task.refresh_from_db()
        self.assertEqual(self.task.total_cost, Decimal('0.00'))
        response = self.client.delete(f'{self.url}{self.service.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cost_report(self):
        """Test the task cost report"""
        self.client.post(self.url, {'service_id': self.service.id, 'quantity': '2'}, format='json')
        response = self.client.get(f'/api/v1/cost/tasks/{self.task.id}/report/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['services']), 1)
        self.assertEqual(response.data['total_cost'], Decimal('34.00'))

    def test_task_outside_visible_projects(self):
        """Test tasks of invisible projects return 404"""
        other_admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        client = AuthenticatedAPIClient().authenticate_user(other_admin)
        self.assertEqual(client.get(self.url).status_code, status.HTTP_404_NOT_FOUND)


class TaskProgressAPITests(TestCase):
    """Test progress updates through the cost endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=self.admin, team=[self.worker])
        self.task = TestDataFactory.create_task(self.project)
        self.url = f'/api/v1/cost/tasks/{self.task.id}/progress/'

    def test_team_member_updates_progress(self):
        """Test a team member updating task progress"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.put(self.url, {'progress_percentage': 60, 'actual_hours': 12, 'notes': 'Walls up'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Task.STATUS_EM_ANDAMENTO)
        self.assertEqual(response.data['actual_hours'], 12)
        self.assertIn('Progress updated to 60%: Walls up', response.data['notes'])
        self.project.refresh_from_db()
        self.assertEqual(self.project.progress_percentage, Decimal('60.00'))

    def test_complete_sets_end_date(self):
        """Test 100% progress completes the task"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.put(self.url, {'progress_percentage': 100}, format='json')
        self.assertEqual(response.data['status'], Task.STATUS_CONCLUIDA)
        self.assertIsNotNone(response.data['end_date_actual'])

    def test_progress_out_of_range(self):
        """Test progress outside 0-100 is rejected"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.put(self.url, {'progress_percentage': 120}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ProjectBudgetAPITests(TestCase):
    """Test project budget endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)
        self.project = TestDataFactory.create_project(created_by=self.admin, name='Obra A', total_budget=Decimal('1000.00'))
        TestDataFactory.create_task(self.project, labor_cost=Decimal('300.00'), material_cost=Decimal('200.00'),
                                    status=Task.STATUS_CONCLUIDA, progress_percentage=100)
        TestDataFactory.create_task(self.project, equipment_cost=Decimal('100.00'))
        self.over = TestDataFactory.create_project(created_by=self.admin, name='Obra B', total_budget=Decimal('50.00'))
        TestDataFactory.create_task(self.over, labor_cost=Decimal('80.00'))

    def test_recalculate_cost_and_budget(self):
        """Test recalculating project cost and budget"""
        response = self.client.post(f'/api/v1/cost/projects/{self.project.id}/recalculate-cost/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        # Tasks without services recalculate to zero
        self.assertEqual(response.data['realized_cost'], '0.00')

    def test_budget_detail(self):
        """Test the project budget endpoint"""
        self.project.recalculate_realized_cost()
        response = self.client.get(f'/api/v1/cost/projects/{self.project.id}/budget/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['realized_cost'], '600.00')
        self.assertEqual(response.data['budget_variance'], '400.00')
        self.assertEqual(response.data['budget_usage_percentage'], '60.00')
        self.assertEqual(response.data['total_labor_cost'], '300.00')
        self.assertEqual(response.data['completed_tasks'], 1)
        self.assertEqual(response.data['pending_tasks'], 1)

    def test_recalculate_progress(self):
        """Test recalculating project progress"""
        response = self.client.post(f'/api/v1/cost/projects/{self.project.id}/recalculate-progress/')
        self.assertEqual(response.data['progress_percentage'], '50.00')

    def test_over_budget_and_report(self):
        """Test over-budget projects and the budget report"""
        self.project.recalculate_realized_cost()
        self.over.recalculate_realized_cost()
        response = self.client.get('/api/v1/cost/projects/over-budget/')
        self.assertEqual([item['project_name'] for item in response.data], ['Obra B'])
        response = self.client.get('/api/v1/cost/projects/budget-report/')
        self.assertEqual([item['project_name'] for item in response.data], ['Obra A', 'Obra B'])

    def test_budget_report_requires_admin_or_manager(self):
        """Test the budget report is limited to admins and managers"""
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user(role=ROLE_USER))
        response = client.get('/api/v1/cost/projects/budget-report/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
