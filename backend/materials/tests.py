"""
Test suite for the materials module
Tests: material CRUD, soft delete, stock movements, low stock queries
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from backend.core.exceptions import InsufficientStock, InvalidMovementType, SGPCException
from backend.core.models import AuditLog, ROLE_MANAGER, ROLE_USER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.materials.models import Material, StockMovement


class MaterialStockTests(TestCase):
    """Test Material stock operations"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.material = TestDataFactory.create_material(current_stock='10', minimum_stock='5')

    def test_add_stock_records_movement(self):
        """Test adding stock records an entry movement"""
        movement = self.material.add_stock(Decimal('2.5'), self.user, 'Delivery')
        self.assertEqual(self.material.current_stock, Decimal('12.5'))
        self.assertEqual(movement.movement_type, StockMovement.TYPE_ENTRADA)
        self.assertEqual(movement.stock_before, Decimal('10'))
        self.assertEqual(movement.stock_after, Decimal('12.5'))
        self.material.refresh_from_db()
        self.assertEqual(self.material.current_stock, Decimal('12.500'))

    def test_remove_stock(self):
        """Test removing stock"""
        movement = self.material.remove_stock(Decimal('4'), self.user)
        self.assertEqual(movement.movement_type, StockMovement.TYPE_SAIDA)
        self.assertEqual(self.material.current_stock, Decimal('6'))

    def test_remove_all_stock(self):
        """Test stock can reach zero"""
        self.material.remove_stock(Decimal('10'))
        self.assertEqual(self.material.current_stock, Decimal('0'))

    def test_insufficient_stock(self):
        """Test removing more than available fails"""
        with self.assertRaises(InsufficientStock):
            self.material.remove_stock(Decimal('10.001'))
        self.material.refresh_from_db()
        self.assertEqual(self.material.current_stock, Decimal('10.000'))
        self.assertFalse(StockMovement.objects.exists())

    def test_non_positive_quantity(self):
        """Test non-positive quantities are rejected"""
        with self.assertRaises(SGPCException):
            self.material.add_stock(Decimal('0'))
        with self.assertRaises(SGPCException):
            self.material.remove_stock(Decimal('-1'))
        with self.assertRaises(SGPCException):
            self.material.add_stock(Decimal('NaN'))

    def test_movement_type_aliases(self):
        """Test English movement type aliases"""
        self.assertEqual(StockMovement.normalize_type('in'), StockMovement.TYPE_ENTRADA)
        self.assertEqual(StockMovement.normalize_type('OUT'), StockMovement.TYPE_SAIDA)
        self.assertEqual(StockMovement.normalize_type('saida'), StockMovement.TYPE_SAIDA)
        with self.assertRaises(InvalidMovementType):
            StockMovement.normalize_type('TRANSFER')

    def test_low_stock_is_strictly_below_minimum(self):
        """Test low stock means below the minimum"""
        at_minimum = TestDataFactory.create_material(current_stock='5', minimum_stock='5')
        below = TestDataFactory.create_material(current_stock='4', minimum_stock='5')
        TestDataFactory.create_material(current_stock='1', minimum_stock='5', is_active=False)
        self.assertFalse(at_minimum.is_low_stock)
        self.assertTrue(below.is_low_stock)
        self.assertEqual(list(Material.objects.low_stock()), [below])


class MaterialAPITests(TestCase):
    """Test material endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.client = AuthenticatedAPIClient().authenticate_user(self.manager)

    def test_create_material(self):
        """Test creating a material"""
        response = self.client.post('/api/v1/materials/', {
            'name': 'Cimento CP-II',
            'unit_of_measure': 'saco',
            'unit_price': '32.90',
            'supplier': 'Votorantim',
            'current_stock': '50',
            'minimum_stock': '20',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_active'])
        self.assertFalse(response.data['is_low_stock'])

    def test_create_requires_positive_price(self):
        """Test unit price must be positive"""
        response = self.client.post('/api/v1/materials/', {
            'name': 'Areia', 'unit_of_measure': 'm3', 'unit_price': '0',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_name_conflict(self):
        """Test duplicate material names return 409"""
        TestDataFactory.create_material(name='Areia')
        response = self.client.post('/api/v1/materials/', {
            'name': 'areia', 'unit_of_measure': 'm3', 'unit_price': '80.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_user_role_reads_but_cannot_write(self):
        """Test the USER role has read-only access"""
        material = TestDataFactory.create_material()
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        self.assertEqual(client.get('/api/v1/materials/').status_code, status.HTTP_200_OK)
        self.assertEqual(client.get(f'/api/v1/materials/{material.id}/').status_code, status.HTTP_200_OK)
        response = client.post('/api/v1/materials/', {'name': 'X', 'unit_of_measure': 'un', 'unit_price': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = client.post(f'/api/v1/materials/{material.id}/stock/add/?quantity=1')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_partial_update(self):
        """Test updating a material"""
        material = TestDataFactory.create_material(supplier='Old')
        response = self.client.patch(f'/api/v1/materials/{material.id}/', {'supplier': 'New'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['supplier'], 'New')
        self.assertEqual(response.data['name'], material.name)

    def test_delete_is_soft(self):
        """Test deleting a material deactivates it"""
        material = TestDataFactory.create_material()
        response = self.client.delete(f'/api/v1/materials/{material.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertTrue(Material.objects.filter(pk=material.pk, is_active=False).exists())
        self.assertEqual(self.client.get(f'/api/v1/materials/{material.id}/').status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.get('/api/v1/materials/').data, [])

    def test_search_and_supplier(self):
        """Test material search and supplier filter"""
        TestDataFactory.create_material(name='Tijolo baiano', supplier='Cerâmica Sul')
        TestDataFactory.create_material(name='Brita', supplier='Pedreira Norte')
        self.assertEqual(len(self.client.get('/api/v1/materials/search/?name=tijolo').data), 1)
        self.assertEqual(len(self.client.get('/api/v1/materials/supplier/pedreira/').data), 1)
        self.assertEqual(self.client.get('/api/v1/materials/search/').status_code, status.HTTP_400_BAD_REQUEST)

    def test_low_stock_endpoint(self):
        """Test the low stock endpoint"""
        low = TestDataFactory.create_material(current_stock='2', minimum_stock='10')
        TestDataFactory.create_material(current_stock='20', minimum_stock='10')
        response = self.client.get('/api/v1/materials/low-stock/')
        self.assertEqual([item['id'] for item in response.data], [low.id])


class StockMovementAPITests(TestCase):
    """Test stock movement endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.client = AuthenticatedAPIClient().authenticate_user(self.manager)
        self.material = TestDataFactory.create_material(current_stock='10', minimum_stock='5')
        self.base = f'/api/v1/materials/{self.material.id}/'

    def test_entry_with_alias(self):
        """Test a stock entry using the IN alias"""
        response = self.client.post(f'{self.base}stock/', {
            'movement_type': 'IN', 'quantity': '5', 'observation': 'NF 123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['current_stock'], '15.000')
        self.assertTrue(AuditLog.objects.filter(action='STOCK_MOVEMENT', object_id=str(self.material.id)).exists())

    def test_exit_over_stock(self):
        """Test an exit larger than stock fails"""
        response = self.client.post(f'{self.base}stock/', {'movement_type': 'SAIDA', 'quantity': '11'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Insufficient stock')

    def test_invalid_movement_type(self):
        """Test an unknown movement type"""
        response = self.client.post(f'{self.base}stock/', {'movement_type': 'MOVE', 'quantity': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid movement type')

    def test_add_and_remove_query_param(self):
        """Test add/remove stock with query parameters"""
        response = self.client.post(f'{self.base}stock/add/?quantity=2.5')
        self.assertEqual(response.data['current_stock'], '12.500')
        response = self.client.post(f'{self.base}stock/remove/?quantity=8')
        self.assertEqual(response.data['current_stock'], '4.500')
        self.assertTrue(response.data['is_low_stock'])

    def test_missing_or_invalid_quantity(self):
        """Test a missing or invalid quantity"""
        self.assertEqual(self.client.post(f'{self.base}stock/add/').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.post(f'{self.base}stock/add/?quantity=abc').status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_finite_or_oversized_quantity(self):
        """Test NaN, Infinity and out-of-range quantities are validation errors"""
        for raw in ('NaN', 'Infinity', '-Infinity', '1e30', '0.0001'):
            for action in ('add', 'remove'):
                response = self.client.post(f'{self.base}stock/{action}/?quantity={raw}')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, f'{action} {raw}')
                self.assertEqual(response.data['error'], 'Validation error')
        response = self.client.post(f'{self.base}stock/', {'movement_type': 'IN', 'quantity': 'NaN'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.material.refresh_from_db()
        self.assertEqual(self.material.current_stock, Decimal('10.000'))
        self.assertFalse(StockMovement.objects.filter(material=self.material).exists())

    def test_entry_beyond_stock_capacity(self):
        """Test an entry that would overflow the stock column is rejected"""
        response = self.client.post(f'{self.base}stock/add/?quantity=999999999.999')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Business rule violation')

    def test_movement_history_newest_first(self):
        """Test movement history is newest first"""
        self.material.add_stock(Decimal('1'), self.manager)
        self.material.remove_stock(Decimal('3'), self.manager)
        response = self.client.get(f'{self.base}movements/')
        self.assertEqual([item['movement_type'] for item in response.data],
                         [StockMovement.TYPE_SAIDA, StockMovement.TYPE_ENTRADA])
        self.assertEqual(response.data[0]['stock_after'], '8.000')
