"""
Test suite for the material requests module
Tests: request submission, listing and access, approval with stock withdrawal, rejection
"""
from decimal import Decimal
from unittest import mock

from django.core import mail
from django.test import TestCase, override_settings
from rest_framework import status

from backend.core.models import AuditLog, ROLE_ADMIN, ROLE_MANAGER, ROLE_USER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.material_requests.models import MaterialRequest, MaterialRequestItem
from backend.materials.models import StockMovement


class MaterialRequestModelTests(TestCase):
    """Test MaterialRequest totals"""

    def test_item_price_defaults_to_material_price(self):
        """Test item unit price defaults to the material price"""
        admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        project = TestDataFactory.create_project(created_by=admin)
        material = TestDataFactory.create_material(unit_price='12.50')
        material_request = MaterialRequest.objects.create(project=project, requester=admin)
        item = MaterialRequestItem.objects.create(material_request=material_request, material=material, quantity=Decimal('3'))
        self.assertEqual(item.unit_price, Decimal('12.50'))
        self.assertEqual(item.total_price, Decimal('37.50'))

    def test_totals(self):
        """Test request totals"""
        admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        project = TestDataFactory.create_project(created_by=admin)
        cement = TestDataFactory.create_material(unit_price='30.00')
        sand = TestDataFactory.create_material(unit_price='80.00')
        material_request = TestDataFactory.create_material_request(project, admin, items=[(cement, 2), (sand, '0.5')])
        self.assertEqual(material_request.item_count, 2)
        self.assertEqual(material_request.total_amount, Decimal('100.00'))
        self.assertTrue(material_request.is_pending)


@override_settings(SGPC_NOTIFICATIONS_SYNC=True, EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
class MaterialRequestCreateTests(TestCase):
    """Test request submission"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=self.admin, team=[self.worker])
        self.cement = TestDataFactory.create_material(unit_price='30.00', current_stock='100')
        self.client = AuthenticatedAPIClient().authenticate_user(self.worker)

    def test_any_role_submits_request(self):
        """Test any role can submit a material request"""
        response = self.client.post('/api/v1/material-requests/', {
            'project_id': self.project.id,
            'needed_date': '2030-01-15',
            'items': [{'material_id': self.cement.id, 'quantity': '4'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], MaterialRequest.STATUS_PENDENTE)
        self.assertEqual(response.data['requester_id'], self.worker.id)
        self.assertEqual(response.data['total_amount'], '120.00')
        self.assertEqual(response.data['items'][0]['unit_price'], '30.00')
        # Approvers are notified, stock is untouched
        self.assertEqual(sorted(message.to[0] for message in mail.outbox), sorted([self.admin.email, self.manager.email]))
        self.cement.refresh_from_db()
        self.assertEqual(self.cement.current_stock, Decimal('100.000'))

    def test_requires_items(self):
        """Test a request needs at least one item"""
        response = self.client.post('/api/v1/material-requests/', {
            'project_id': self.project.id, 'items': [],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_project(self):
        """Test a request for an unknown project returns 404"""
        response = self.client.post('/api/v1/material-requests/', {
            'project_id': 999999, 'items': [{'material_id': self.cement.id, 'quantity': '1'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_inactive_material(self):
        """Test inactive materials cannot be requested"""
        inactive = TestDataFactory.create_material(is_active=False)
        response = self.client.post('/api/v1/material-requests/', {
            'project_id': self.project.id, 'items': [{'material_id': inactive.id, 'quantity': '1'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(MaterialRequest.objects.exists())

    def test_non_positive_quantity(self):
        response = self.client.post('/api/v1/material-requests/', {
            'project_id': self.project.id, 'items': [{'material_id': self.cement.id, 'quantity': '0'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class MaterialRequestQueryTests(TestCase):
    """Test listing and access rules"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.other = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=self.admin, team=[self.worker])
        material = TestDataFactory.create_material()
        self.pending = TestDataFactory.create_material_request(self.project, self.worker, items=[(material, 1)])
        self.approved = TestDataFactory.create_material_request(
            self.project, self.worker, items=[(material, 1)], status=MaterialRequest.STATUS_APROVADA
        )
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)

    def test_list_by_status(self):
        """Test listing requests by status"""
        response = self.client.get('/api/v1/material-requests/pending/')
        self.assertEqual([item['id'] for item in response.data], [self.pending.id])
        response = self.client.get('/api/v1/material-requests/approved/')
        self.assertEqual([item['id'] for item in response.data], [self.approved.id])
        self.assertEqual(self.client.get('/api/v1/material-requests/rejected/').data, [])

    def test_user_role_cannot_list_all(self):
        """Test the USER role cannot list all requests"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        self.assertEqual(client.get('/api/v1/material-requests/').status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(client.get('/api/v1/material-requests/pending/').status_code, status.HTTP_403_FORBIDDEN)

    def test_by_project_for_team_member(self):
        """Test team members list requests of their project"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.get(f'/api/v1/material-requests/project/{self.project.id}/')
        self.assertEqual(len(response.data), 2)
        client = AuthenticatedAPIClient().authenticate_user(self.other)
        response = client.get(f'/api/v1/material-requests/project/{self.project.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_detail_for_requester_only(self):
        """Test the USER role only sees its own requests"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        self.assertEqual(client.get(f'/api/v1/material-requests/{self.pending.id}/').status_code, status.HTTP_200_OK)
        client = AuthenticatedAPIClient().authenticate_user(self.other)
        self.assertEqual(client.get(f'/api/v1/material-requests/{self.pending.id}/').status_code, status.HTTP_403_FORBIDDEN)

    def test_missing_request(self):
        self.assertEqual(self.client.get('/api/v1/material-requests/999999/').status_code, status.HTTP_404_NOT_FOUND)


@override_settings(SGPC_NOTIFICATIONS_SYNC=True, EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
class MaterialRequestApprovalTests(TestCase):
    """Test approval and rejection workflow"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=self.manager, team=[self.worker])
        self.cement = TestDataFactory.create_material(current_stock='10')
        self.sand = TestDataFactory.create_material(current_stock='5')
        self.client = AuthenticatedAPIClient().authenticate_user(self.manager)

    def _request(self, items):
        return TestDataFactory.create_material_request(self.project, self.worker, items=items)

    def test_approve_withdraws_stock(self):
        """Test approval withdraws stock for every item"""
        material_request = self._request([(self.cement, 4), (self.sand, 5)])
        response = self.client.put(f'/api/v1/material-requests/{material_request.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], MaterialRequest.STATUS_APROVADA)
        self.assertEqual(response.data['approved_by_name'], self.manager.full_name)
        self.assertIsNotNone(response.data['approved_at'])
        self.cement.refresh_from_db()
        self.sand.refresh_from_db()
        self.assertEqual(self.cement.current_stock, Decimal('6.000'))
        self.assertEqual(self.sand.current_stock, Decimal('0.000'))
        movement = StockMovement.objects.filter(material=self.cement).get()
        self.assertEqual(movement.movement_type, StockMovement.TYPE_SAIDA)
        self.assertEqual(movement.observation, f"Material request #{material_request.id} approved")
        self.assertTrue(AuditLog.objects.filter(action='APPROVE', object_id=str(material_request.id)).exists())
        self.assertEqual(mail.outbox[-1].to, [self.worker.email])

    def test_approve_is_all_or_nothing(self):
        """Test a short item blocks the whole approval"""
        material_request = self._request([(self.cement, 4), (self.sand, 6)])
        response = self.client.put(f'/api/v1/material-requests/{material_request.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Insufficient stock')
        self.cement.refresh_from_db()
        self.assertEqual(self.cement.current_stock, Decimal('10.000'))
        self.assertFalse(StockMovement.objects.exists())
        material_request.refresh_from_db()
        self.assertEqual(material_request.status, MaterialRequest.STATUS_PENDENTE)

    def test_approve_sums_repeated_material(self):
        """Test repeated materials are summed before checking stock"""
        material_request = self._request([(self.sand, 3), (self.sand, 3)])
        response = self.client.put(f'/api/v1/material-requests/{material_request.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.sand.refresh_from_db()
        self.assertEqual(self.sand.current_stock, Decimal('5.000'))

    def test_approve_twice(self):
        """Test approving an approved request fails"""
        material_request = self._request([(self.cement, 1)])
        self.client.put(f'/api/v1/material-requests/{material_request.id}/approve/')
        response = self.client.put(f'/api/v1/material-requests/{material_request.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Business rule violation')
        self.cement.refresh_from_db()
        self.assertEqual(self.cement.current_stock, Decimal('9.000'))

    def test_approval_reads_status_under_lock(self):
        """Test an approval racing a concurrent one sees the committed status and leaves stock alone"""
        material_request = self._request([(self.cement, 1)])
        lock = MaterialRequest.objects.select_for_update

        def approved_meanwhile(*args, **kwargs):
            MaterialRequest.objects.filter(pk=material_request.pk).update(status=MaterialRequest.STATUS_APROVADA)
            return lock(*args, **kwargs)

        with mock.patch.object(MaterialRequest.objects, 'select_for_update', side_effect=approved_meanwhile):
            response = self.client.put(f'/api/v1/material-requests/{material_request.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.cement.refresh_from_db()
        self.assertEqual(self.cement.current_stock, Decimal('10.000'))
        self.assertFalse(StockMovement.objects.filter(material=self.cement).exists())

    def test_user_role_cannot_approve(self):
        """Test the USER role cannot approve"""
        material_request = self._request([(self.cement, 1)])
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.put(f'/api/v1/material-requests/{material_request.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reject(self):
        """Test rejecting a request with a reason"""
        material_request = self._request([(self.cement, 1)])
        response = self.client.put(f'/api/v1/material-requests/{material_request.id}/reject/', {
            'rejection_reason': 'Budget frozen',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], MaterialRequest.STATUS_REJEITADA)
        self.assertEqual(response.data['rejection_reason'], 'Budget frozen')
        self.cement.refresh_from_db()
        self.assertEqual(self.cement.current_stock, Decimal('10.000'))
        self.assertIn('Budget frozen', mail.outbox[-1].body)

    def test_reject_requires_reason(self):
        """Test rejection requires a reason"""
        material_request = self._request([(self.cement, 1)])
        response = self.client.put(f'/api/v1/material-requests/{material_request.id}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reject_approved_request(self):
        """Test an approved request cannot be rejected"""
        material_request = self._request([(self.cement, 1)])
        self.client.put(f'/api/v1/material-requests/{material_request.id}/approve/')
        response = self.client.put(f'/api/v1/material-requests/{material_request.id}/reject/', {
            'rejection_reason': 'Too late',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
