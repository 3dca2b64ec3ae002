"""
Test suite for the core module
Tests: authentication, users and roles, password reset, audit log, error responses, notifications
"""
from datetime import timedelta
from io import StringIO
from unittest import mock

from django.contrib.auth.models import Group
from django.core import mail
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from backend.core import notifications
from backend.core.cache_utils import REPORTS_PREFIX, get_or_compute, invalidate_reports_cache, make_cache_key
from backend.core.models import AuditLog, PasswordResetToken, ROLE_ADMIN, ROLE_MANAGER, ROLE_USER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import create_audit_log


class UserModelTests(TestCase):
    """Test User role helpers"""

    def test_username_mirrors_email(self):
        """Test username is kept equal to the email"""
        user = TestDataFactory.create_user(email='maria@test.com')
        self.assertEqual(user.username, 'maria@test.com')

    def test_primary_role_priority(self):
        """Test ADMIN outranks MANAGER outranks USER"""
        user = TestDataFactory.create_user(role=ROLE_USER)
        self.assertEqual(user.primary_role, ROLE_USER)
        admin = TestDataFactory.create_user(role=ROLE_MANAGER)
        admin.groups.add(Group.objects.get(name=ROLE_ADMIN))
        self.assertEqual(admin.primary_role, ROLE_ADMIN)

    def test_user_without_roles_defaults_to_user(self):
        """Test a user with no groups reports the USER role"""
        user = TestDataFactory.create_user(role=None)
        self.assertEqual(user.primary_role, ROLE_USER)
        self.assertFalse(user.has_role(ROLE_ADMIN, ROLE_MANAGER))

    def test_reset_token_expires_in_24_hours(self):
        """Test password reset tokens are valid for one day"""
        user = TestDataFactory.create_user()
        token = PasswordResetToken.objects.create(user=user)
        self.assertFalse(token.is_expired())
        self.assertAlmostEqual(
            (token.expires_at - timezone.now()).total_seconds(), timedelta(hours=24).total_seconds(), delta=60
        )


class AuthenticationTests(TestCase):
    """Test register, login, refresh and bearer authentication"""

    def setUp(self):
        self.client = APIClient()
        self.user = TestDataFactory.create_user(email='joao@test.com', password='secret123', role=ROLE_MANAGER)

    def test_login_success(self):
        """Test login returns access and refresh tokens"""
        response = self.client.post('/api/v1/auth/login/', {'email': 'joao@test.com', 'password': 'secret123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['type'], 'Bearer')
        self.assertEqual(response.data['email'], 'joao@test.com')
        self.assertEqual(response.data['role'], ROLE_MANAGER)
        self.assertIn('token', response.data)
        self.assertIn('refresh', response.data)

    def test_login_wrong_password(self):
        """Test login with a wrong password"""
        response = self.client.post('/api/v1/auth/login/', {'email': 'joao@test.com', 'password': 'wrong'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['status'], 401)
        self.assertEqual(response.data['path'], '/api/v1/auth/login/')

    def test_login_inactive_account(self):
        """Test login with a deactivated account"""
        TestDataFactory.create_user(email='inactive@test.com', password='secret123', is_active=False)
        response = self.client.post('/api/v1/auth/login/', {'email': 'inactive@test.com', 'password': 'secret123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_register_creates_admin(self):
        """Test registration creates an administrator"""
        response = self.client.post('/api/v1/auth/register/', {
            'full_name': 'Ana Souza',
            'email': 'ana@test.com',
            'password': 'secret123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['role'], ROLE_ADMIN)
        self.assertEqual(response.data['user']['email'], 'ana@test.com')

    def test_register_duplicate_email_conflict(self):
        """Test registering an existing email returns 409"""
        response = self.client.post('/api/v1/auth/register/', {
            'full_name': 'Other', 'email': 'joao@test.com', 'password': 'secret123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_register_short_password(self):
        """Test registration rejects short passwords"""
        response = self.client.post('/api/v1/auth/register/', {
            'full_name': 'Short', 'email': 'short@test.com', 'password': '123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('details', response.data)

    def test_refresh_token(self):
        """Test refreshing an access token"""
        login = self.client.post('/api/v1/auth/login/', {'email': 'joao@test.com', 'password': 'secret123'}, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_with_bearer_token(self):
        """Test the current user endpoint with a bearer token"""
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'joao@test.com')
        self.assertEqual(response.data['roles'], [ROLE_MANAGER])

    def test_malformed_authorization_header(self):
        """Test a malformed Authorization header is rejected"""
        self.client.credentials(HTTP_AUTHORIZATION='Token abc')
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_invalid_token(self):
        """Test an invalid token is rejected"""
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-jwt')
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error'], 'Unauthorized')

    def test_ping_is_public(self):
        response = self.client.get('/api/v1/ping/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'ok')


@override_settings(SGPC_NOTIFICATIONS_SYNC=True, EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
class PasswordResetTests(TestCase):
    """Test forgot and reset password flow"""

    def setUp(self):
        self.client = APIClient()
        self.user = TestDataFactory.create_user(email='reset@test.com', password='oldpass123')

    def test_forgot_password_sends_token(self):
        """Test forgot password mails a reset token"""
        response = self.client.post('/api/v1/auth/forgot-password/', {'email': 'reset@test.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        token = PasswordResetToken.objects.get(user=self.user)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(token.token, mail.outbox[0].body)

    def test_forgot_password_unknown_email_same_answer(self):
        """Test unknown emails get the same answer as known ones"""
        response = self.client.post('/api/v1/auth/forgot-password/', {'email': 'nobody@test.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(mail.outbox), 0)

    def test_reset_password(self):
        """Test resetting a password with a valid token"""
        token = PasswordResetToken.objects.create(user=self.user)
        response = self.client.post('/api/v1/auth/reset-password/', {
            'token': token.token, 'new_password': 'newpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('newpass123'))
        self.assertFalse(PasswordResetToken.objects.filter(pk=token.pk).exists())

    def test_reset_password_expired_token(self):
        """Test resetting with an expired token fails"""
        token = PasswordResetToken.objects.create(user=self.user, expires_at=timezone.now() - timedelta(minutes=1))
        response = self.client.post('/api/v1/auth/reset-password/', {
            'token': token.token, 'new_password': 'newpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reset_password_unknown_token(self):
        """Test resetting with an unknown token fails"""
        response = self.client.post('/api/v1/auth/reset-password/', {
            'token': 'missing', 'new_password': 'newpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class UserManagementTests(TestCase):
    """Test user administration endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.user = TestDataFactory.create_user(role=ROLE_USER)
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)

    def test_admin_creates_user_with_role(self):
        """Test an admin creating a user with a role"""
        response = self.client.post('/api/v1/users/admin/create/', {
            'full_name': 'Carlos Lima', 'email': 'carlos@test.com', 'password': 'secret123', 'role_name': 'manager',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['roles'], [ROLE_MANAGER])

    def test_admin_create_requires_role(self):
        """Test user creation requires a role"""
        response = self.client.post('/api/v1/users/admin/create/', {
            'full_name': 'No Role', 'email': 'norole@test.com', 'password': 'secret123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_manager_cannot_create_users(self):
        """Test managers cannot create users"""
        client = AuthenticatedAPIClient().authenticate_user(self.manager)
        response = client.post('/api/v1/users/admin/create/', {
            'full_name': 'X', 'email': 'x@test.com', 'password': 'secret123', 'role_name': 'USER',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'Access denied')

    def test_user_list_forbidden_for_user_role(self):
        """Test the USER role cannot list users"""
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_deactivate_and_activate(self):
        """Test deactivating and reactivating a user"""
        response = self.client.put(f'/api/v1/users/{self.user.id}/deactivate/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])
        active = self.client.get('/api/v1/users/active/')
        self.assertNotIn(self.user.id, [item['id'] for item in active.data])
        response = self.client.put(f'/api/v1/users/{self.user.id}/activate/')
        self.assertTrue(response.data['is_active'])

    def test_user_can_view_self_but_not_others(self):
        """Test users can only view their own profile"""
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        self.assertEqual(client.get(f'/api/v1/users/{self.user.id}/').status_code, status.HTTP_200_OK)
        self.assertEqual(client.get(f'/api/v1/users/{self.admin.id}/').status_code, status.HTTP_403_FORBIDDEN)

    def test_update_user_role(self):
        """Test changing a user's role"""
        response = self.client.patch(f'/api/v1/users/{self.user.id}/', {'role_name': 'MANAGER'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['roles'], [ROLE_MANAGER])

    def test_missing_user_returns_404_body(self):
        """Test the error body for a missing user"""
        response = self.client.get('/api/v1/users/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Not found')
        self.assertIn('timestamp', response.data)


class AuditLogTests(TestCase):
    """Test audit log recording and queries"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)

    def test_create_audit_log_helper(self):
        """Test the audit log helper records actor and changes"""
        log = create_audit_log(None, 'CREATE', 'Project', 7, {'new': {'name': 'P'}}, user=self.admin, object_name='P')
        self.assertEqual(log.user_email, self.admin.email)
        self.assertEqual(log.object_id, '7')

    def test_audit_log_failure_is_swallowed(self):
        """Test audit log failures never break the request"""
        with mock.patch.object(AuditLog.objects, 'create', side_effect=Exception('db down')):
            self.assertIsNone(create_audit_log(None, 'CREATE', 'Project', 1, {}, user=self.admin))

    def test_list_is_paginated_and_filterable(self):
        """Test audit log pagination and filters"""
        for index in range(3):
            create_audit_log(None, 'CREATE', 'Material', index, {}, user=self.admin)
        create_audit_log(None, 'DELETE', 'Material', 99, {}, user=self.admin)
        response = self.client.get('/api/v1/audit-logs/?action=DELETE')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertIn('total_pages', response.data)

    def test_entity_history(self):
        """Test the audit history of one entity"""
        create_audit_log(None, 'CREATE', 'Project', 5, {}, user=self.admin)
        create_audit_log(None, 'UPDATE', 'Project', 5, {}, user=self.admin)
        response = self.client.get('/api/v1/audit-logs/entity/Project/5/')
        self.assertEqual(len(response.data), 2)

    def test_user_role_cannot_read_audit_logs(self):
        """Test the USER role cannot read audit logs"""
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        self.assertEqual(client.get('/api/v1/audit-logs/').status_code, status.HTTP_403_FORBIDDEN)


@override_settings(SGPC_NOTIFICATIONS_SYNC=True, EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
class NotificationTests(TestCase):
    """Test e-mail dispatch"""

    def test_dispatch_skips_blank_recipients(self):
        """Test recipients without an email are skipped"""
        notifications.dispatch(['a@test.com', '', None], 'Subject', 'Body')
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['a@test.com'])

    @override_settings(SGPC_NOTIFICATIONS_ENABLED=False)
    def test_disabled_notifications_send_nothing(self):
        """Test disabled notifications send no mail"""
        notifications.dispatch(['a@test.com'], 'Subject', 'Body')
        self.assertEqual(len(mail.outbox), 0)

    def test_send_failure_is_logged_not_raised(self):
        """Test mail failures are logged, not raised"""
        with mock.patch('backend.core.notifications.send_mail', side_effect=Exception('smtp down')):
            notifications.dispatch(['a@test.com'], 'Subject', 'Body')


@override_settings(CACHES={'default': {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache', 'LOCATION': 'sgpc-tests'}})
class CacheUtilsTests(TestCase):
    """Test report caching helpers"""

    def setUp(self):
        cache.clear()

    def test_get_or_compute_caches_result(self):
        """Test the computed value is cached"""
        compute = mock.Mock(return_value={'total': 1})
        first = get_or_compute(REPORTS_PREFIX, 60, compute, 'projects', 1)
        second = get_or_compute(REPORTS_PREFIX, 60, compute, 'projects', 1)
        self.assertEqual(first, second)
        compute.assert_called_once_with()

    def test_keys_differ_by_arguments(self):
        """Test cache keys differ per argument"""
        self.assertNotEqual(make_cache_key(REPORTS_PREFIX, 'projects', 1), make_cache_key(REPORTS_PREFIX, 'projects', 2))

    def test_invalidation_without_redis_is_silent(self):
        """Test invalidation is a no-op without Redis"""
        self.assertEqual(invalidate_reports_cache(), 0)

    def test_invalidation_uses_pattern_delete(self):
        """Test invalidation deletes by prefix pattern"""
        with mock.patch.object(cache, 'delete_pattern', create=True, return_value=3) as delete_pattern:
            self.assertEqual(invalidate_reports_cache(), 3)
        delete_pattern.assert_called_once_with(f'{REPORTS_PREFIX}:*')

    def test_team_change_invalidates_reports(self):
        """Test adding and removing project team members drops cached reports"""
        admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        worker = TestDataFactory.create_user(role=ROLE_USER)
        project = TestDataFactory.create_project(created_by=admin)
        with mock.patch('backend.core.cache_signals.invalidate_reports_cache') as reports, \
                mock.patch('backend.core.cache_signals.invalidate_dashboard_cache') as dashboard:
            project.team_members.add(worker)
            self.assertEqual(reports.call_count, 1)
            self.assertEqual(dashboard.call_count, 1)
            project.team_members.remove(worker)
            self.assertEqual(reports.call_count, 2)


class CreateRolesCommandTests(TestCase):
    """Test the create_roles management command"""

    def test_roles_exist_after_command(self):
        """Test create_roles seeds all three groups"""
        out = StringIO()
        call_command('create_roles', stdout=out)
        self.assertEqual(
            set(Group.objects.filter(name__in=[ROLE_ADMIN, ROLE_MANAGER, ROLE_USER]).values_list('name', flat=True)),
            {ROLE_ADMIN, ROLE_MANAGER, ROLE_USER},
        )
        self.assertIn('Completed', out.getvalue())
