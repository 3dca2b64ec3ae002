"""
Test utilities and factories for creating test data
"""
from datetime import timedelta
from decimal import Decimal
import random
import string

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from backend.core.models import ROLE_USER
from backend.costs.models import Service
from backend.material_requests.models import MaterialRequest, MaterialRequestItem
from backend.materials.models import Material
from backend.projects.models import Project
from backend.tasks.models import Task

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(email=None, password='testpass123', role=ROLE_USER, full_name=None, is_active=True, **extra):
        """Create a test user holding the given role"""
        if not email:
            email = f'user_{TestDataFactory.random_string(6).lower()}@test.com'
        user = User.objects.create_user(
            email=email,
            password=password,
            full_name=full_name or f'Test User {TestDataFactory.random_string(4)}',
            is_active=is_active,
            **extra
        )
        if role:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user

    @staticmethod
    def create_project(created_by=None, name=None, team=None, **fields):
        """Create a test project; the creator joins its team"""
        today = timezone.localdate()
        defaults = {
            'name': name or f'Project_{TestDataFactory.random_string(6)}',
            'client': 'ACME Construtora',
            'start_date_planned': today,
            'end_date_planned': today + timedelta(days=90),
            'total_budget': Decimal('100000.00'),
        }
        defaults.update(fields)
        project = Project.objects.create(created_by=created_by, **defaults)
        members = list(team or [])
        if created_by is not None:
            members.append(created_by)
        if members:
            project.team_members.add(*members)
        return project

    @staticmethod
    def create_task(project, title=None, created_by=None, **fields):
        """Create a test task"""
        return Task.objects.create(
            project=project,
            title=title or f'Task_{TestDataFactory.random_string(6)}',
            created_by=created_by,
            **fields
        )

    @staticmethod
    def create_service(name=None, labor='10.00', material='5.00', equipment='2.00', **fields):
        """Create a test service"""
        return Service.objects.create(
            name=name or f'Service_{TestDataFactory.random_string(6)}',
            unit_of_measurement=fields.pop('unit_of_measurement', 'm2'),
            unit_labor_cost=Decimal(labor),
            unit_material_cost=Decimal(material),
            unit_equipment_cost=Decimal(equipment),
            **fields
        )

    @staticmethod
    def create_material(name=None, unit_price='25.00', current_stock='100', minimum_stock='10', **fields):
        """Create a test material"""
        return Material.objects.create(
            name=name or f'Material_{TestDataFactory.random_string(6)}',
            unit_of_measure=fields.pop('unit_of_measure', 'un'),
            unit_price=Decimal(unit_price),
            current_stock=Decimal(current_stock),
            minimum_stock=Decimal(minimum_stock),
            **fields
        )

    @staticmethod
    def create_material_request(project, requester, items=None, **fields):
        """Create a pending request; items is a list of (material, quantity)"""
        material_request = MaterialRequest.objects.create(project=project, requester=requester, **fields)
        for material, quantity in items or []:
            MaterialRequestItem.objects.create(
                material_request=material_request,
                material=material,
                quantity=Decimal(str(quantity)),
                unit_price=material.unit_price,
            )
        return material_request


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
