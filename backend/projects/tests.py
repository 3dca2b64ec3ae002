"""
Test suite for the projects module
Tests: project CRUD, visibility, team management, derived metrics, attachments
"""
import os
import shutil
import tempfile
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.core import mail
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from backend.core.models import Attachment, AuditLog, ROLE_ADMIN, ROLE_MANAGER, ROLE_USER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.projects.models import Project
from backend.projects.utils import refresh_project_metrics


class ProjectModelTests(TestCase):
    """Test Project derived values"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)

    def test_recalculate_progress_is_task_average(self):
        """Test project progress is the average of its tasks"""
        project = TestDataFactory.create_project(created_by=self.admin)
        TestDataFactory.create_task(project, progress_percentage=50)
        TestDataFactory.create_task(project, progress_percentage=25)
        self.assertEqual(project.recalculate_progress(), Decimal('37.50'))

    def test_recalculate_progress_without_tasks(self):
        """Test progress of a project without tasks"""
        project = TestDataFactory.create_project(created_by=self.admin, progress_percentage=Decimal('40'))
        self.assertEqual(project.recalculate_progress(), Decimal('0.00'))

    def test_recalculate_cost_reports_budget_crossing(self):
        """Test cost recalculation reports the budget crossing"""
        project = TestDataFactory.create_project(created_by=self.admin, total_budget=Decimal('100.00'))
        TestDataFactory.create_task(project, labor_cost=Decimal('60.00'))
        self.assertFalse(project.recalculate_realized_cost())
        TestDataFactory.create_task(project, labor_cost=Decimal('50.00'))
        self.assertTrue(project.recalculate_realized_cost())
        self.assertEqual(project.realized_cost, Decimal('110.00'))
        # Already over budget: no second crossing
        self.assertFalse(project.recalculate_realized_cost())

    def test_is_delayed(self):
        """Test delayed project detection"""
        yesterday = timezone.localdate() - timedelta(days=1)
        project = TestDataFactory.create_project(created_by=self.admin, start_date_planned=yesterday - timedelta(days=10),
                                                 end_date_planned=yesterday, status=Project.STATUS_EM_ANDAMENTO)
        self.assertTrue(project.is_delayed())
        project.status = Project.STATUS_CONCLUIDO
        self.assertFalse(project.is_delayed())

    @override_settings(SGPC_NOTIFICATIONS_SYNC=True, EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
    def test_budget_overrun_notifies_creator(self):
        """Test the creator is mailed when the budget is exceeded"""
        project = TestDataFactory.create_project(created_by=self.admin, total_budget=Decimal('10.00'))
        TestDataFactory.create_task(project, labor_cost=Decimal('20.00'))
        refresh_project_metrics(project)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [self.admin.email])
        self.assertIn(project.name, mail.outbox[0].subject)


class ProjectAPITests(TestCase):
    """Test project endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)
        self.today = timezone.localdate()

    def _payload(self, **overrides):
        payload = {
            'name': 'Residencial Jardim',
            'client': 'Construtora Alfa',
            'start_date_planned': str(self.today),
            'end_date_planned': str(self.today + timedelta(days=120)),
            'total_budget': '250000.00',
        }
        payload.update(overrides)
        return payload

    def test_create_project(self):
        """Test creating a project"""
        response = self.client.post('/api/v1/projects/', self._payload(team_member_ids=[self.worker.id]), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Project.STATUS_PLANEJAMENTO)
        member_ids = {member['id'] for member in response.data['team_members']}
        self.assertEqual(member_ids, {self.admin.id, self.worker.id})
        self.assertTrue(AuditLog.objects.filter(model_name='Project', action='CREATE').exists())

    def test_create_duplicate_name(self):
        """Test duplicate project names return 409"""
        TestDataFactory.create_project(created_by=self.admin, name='Residencial Jardim')
        response = self.client.post('/api/v1/projects/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_create_with_start_in_past(self):
        """Test a planned start in the past is rejected"""
        response = self.client.post('/api/v1/projects/', self._payload(
            start_date_planned=str(self.today - timedelta(days=1))
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid date')

    def test_create_with_end_before_start(self):
        """Test an end date before the start is rejected"""
        response = self.client.post('/api/v1/projects/', self._payload(
            end_date_planned=str(self.today), start_date_planned=str(self.today + timedelta(days=5))
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_with_unknown_team_member(self):
        """Test an unknown team member returns 404"""
        response = self.client.post('/api/v1/projects/', self._payload(team_member_ids=[999999]), format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_user_role_cannot_create(self):
        """Test the USER role cannot create projects"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.post('/api/v1/projects/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_only_visible_projects(self):
        """Test users only list their team's projects"""
        mine = TestDataFactory.create_project(created_by=self.admin)
        TestDataFactory.create_project(created_by=self.manager)
        response = self.client.get('/api/v1/projects/')
        self.assertEqual([item['id'] for item in response.data], [mine.id])

    def test_non_member_gets_404(self):
        """Test outsiders get 404 for a project"""
        project = TestDataFactory.create_project(created_by=self.manager)
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.get(f'/api/v1/projects/{project.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_applies_only_provided_fields(self):
        """Test updates only touch the provided fields"""
        project = TestDataFactory.create_project(created_by=self.admin, description='Original')
        response = self.client.put(f'/api/v1/projects/{project.id}/', {'status': 'em_andamento'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Project.STATUS_EM_ANDAMENTO)
        self.assertEqual(response.data['description'], 'Original')

    def test_update_invalid_status(self):
        """Test updating with an unknown status"""
        project = TestDataFactory.create_project(created_by=self.admin)
        response = self.client.patch(f'/api/v1/projects/{project.id}/', {'status': 'FINISHED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid status')

    def test_manager_cannot_delete(self):
        """Test managers cannot delete projects"""
        project = TestDataFactory.create_project(created_by=self.admin, team=[self.manager])
        client = AuthenticatedAPIClient().authenticate_user(self.manager)
        response = client.delete(f'/api/v1/projects/{project.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_deletes_project(self):
        """Test an admin deleting a project"""
        project = TestDataFactory.create_project(created_by=self.admin)
        response = self.client.delete(f'/api/v1/projects/{project.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Project.objects.filter(pk=project.pk).exists())

    def test_by_status_and_search(self):
        """Test listing by status and searching by name"""
        TestDataFactory.create_project(created_by=self.admin, name='Torre Norte', status=Project.STATUS_EM_ANDAMENTO)
        TestDataFactory.create_project(created_by=self.admin, name='Torre Sul')
        response = self.client.get('/api/v1/projects/status/em_andamento/')
        self.assertEqual([item['name'] for item in response.data], ['Torre Norte'])
        response = self.client.get('/api/v1/projects/search/?name=torre')
        self.assertEqual(len(response.data), 2)

    def test_by_invalid_status(self):
        """Test listing by an unknown status"""
        response = self.client.get('/api/v1/projects/status/UNKNOWN/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search_requires_name(self):
        response = self.client.get('/api/v1/projects/search/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delayed_projects(self):
        """Test the delayed projects endpoint"""
        past = self.today - timedelta(days=30)
        delayed = TestDataFactory.create_project(created_by=self.admin, start_date_planned=past,
                                                 end_date_planned=self.today - timedelta(days=1))
        TestDataFactory.create_project(created_by=self.admin)
        response = self.client.get('/api/v1/projects/delayed/')
        self.assertEqual([item['id'] for item in response.data], [delayed.id])
        self.assertTrue(response.data[0]['is_delayed'])

    def test_user_lists_own_projects_only(self):
        """Test users can only list their own projects"""
        project = TestDataFactory.create_project(created_by=self.admin, team=[self.worker])
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.get(f'/api/v1/projects/user/{self.worker.id}/')
        self.assertEqual([item['id'] for item in response.data], [project.id])
        response = client.get(f'/api/v1/projects/user/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ProjectTeamTests(TestCase):
    """Test team membership endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=self.admin)
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)

    def test_add_member(self):
        """Test adding a team member"""
        response = self.client.post(f'/api/v1/projects/{self.project.id}/team/{self.worker.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(self.project.is_team_member(self.worker))

    def test_add_existing_member_conflict(self):
        """Test adding an existing member returns 409"""
        self.project.team_members.add(self.worker)
        response = self.client.post(f'/api/v1/projects/{self.project.id}/team/{self.worker.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_remove_member(self):
        """Test removing a team member"""
        self.project.team_members.add(self.worker)
        response = self.client.delete(f'/api/v1/projects/{self.project.id}/team/{self.worker.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(self.project.is_team_member(self.worker))

    def test_remove_non_member(self):
        """Test removing a non-member returns 404"""
        response = self.client.delete(f'/api/v1/projects/{self.project.id}/team/{self.worker.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_unknown_user(self):
        response = self.client.post(f'/api/v1/projects/{self.project.id}/team/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_team(self):
        self.project.team_members.add(self.worker)
        response = self.client.get(f'/api/v1/projects/{self.project.id}/team/')
        self.assertEqual(len(response.data), 2)


class ProjectAttachmentTests(TestCase):
    """Test project attachment upload, download and delete"""

    def setUp(self):
        self.media_root = tempfile.mkdtemp()
        self.settings_override = override_settings(MEDIA_ROOT=self.media_root)
        self.settings_override.enable()
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.project = TestDataFactory.create_project(created_by=self.admin)
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)

    def tearDown(self):
        self.settings_override.disable()
        shutil.rmtree(self.media_root, ignore_errors=True)

    def _upload(self, name='plan.pdf', content=b'%PDF-1.4 test'):
        upload = SimpleUploadedFile(name, content, content_type='application/pdf')
        return self.client.post(f'/api/v1/projects/{self.project.id}/attachments/', {'file': upload}, format='multipart')

    def test_upload_and_list(self):
        """Test uploading and listing attachments"""
        response = self._upload()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['original_filename'], 'plan.pdf')
        listing = self.client.get(f'/api/v1/projects/{self.project.id}/attachments/')
        self.assertEqual(len(listing.data), 1)

    def test_upload_rejects_extension(self):
        """Test disallowed extensions are rejected"""
        response = self._upload(name='script.exe')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_upload_rejects_empty_file(self):
        """Test empty files are rejected"""
        response = self._upload(content=b'')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(SGPC_UPLOAD_MAX_SIZE=4)
    def test_upload_rejects_large_file(self):
        """Test files over the size limit are rejected"""
        response = self._upload(content=b'0123456789')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_download_and_delete(self):
        """Test downloading and deleting an attachment"""
        attachment_id = self._upload().data['id']
        response = self.client.get(f'/api/v1/projects/attachments/{attachment_id}/download/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(b''.join(response.streaming_content), b'%PDF-1.4 test')
        response.close()
        response = self.client.delete(f'/api/v1/projects/attachments/{attachment_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        response = self.client.get(f'/api/v1/projects/attachments/{attachment_id}/download/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_requires_project_visibility(self):
        """Test attachments of a project outside the caller's teams cannot be deleted"""
        attachment_id = self._upload().data['id']
        manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        client = AuthenticatedAPIClient().authenticate_user(manager)
        response = client.delete(f'/api/v1/projects/attachments/{attachment_id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        worker = TestDataFactory.create_user(role=ROLE_USER)
        client = AuthenticatedAPIClient().authenticate_user(worker)
        response = client.delete(f'/api/v1/projects/attachments/{attachment_id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Attachment.objects.filter(pk=attachment_id).exists())

    def test_project_delete_removes_project_and_task_files(self):
        """Test deleting a project removes the stored files of the project and its tasks"""
        task = TestDataFactory.create_task(self.project)
        self._upload()
        upload = SimpleUploadedFile('photo.png', b'\x89PNG data', content_type='image/png')
        self.client.post(
            f'/api/v1/projects/{self.project.id}/tasks/{task.id}/attachments/', {'file': upload}, format='multipart'
        )
        paths = [attachment.file.path for attachment in Attachment.objects.all()]
        self.assertEqual(len(paths), 2)

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.delete(f'/api/v1/projects/{self.project.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Attachment.objects.exists())
        for path in paths:
            self.assertFalse(os.path.exists(path))

    def test_failed_project_delete_keeps_files(self):
        """Test stored files survive when the project delete rolls back"""
        attachment_id = self._upload().data['id']
        path = Attachment.objects.get(pk=attachment_id).file.path

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with mock.patch.object(Project, 'delete', side_effect=DatabaseError('delete failed')):
                response = self.client.delete(f'/api/v1/projects/{self.project.id}/')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(callbacks, [])
        self.assertTrue(Attachment.objects.filter(pk=attachment_id).exists())
        self.assertTrue(os.path.exists(path))
