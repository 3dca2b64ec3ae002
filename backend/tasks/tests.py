"""
Test suite for the tasks module
Tests: task CRUD, status transitions, progress rules, kanban, statistics, overdue notifications
"""
import shutil
import tempfile
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core import mail
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from backend.core.models import Attachment, ROLE_ADMIN, ROLE_MANAGER, ROLE_USER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.tasks.models import Task


class TaskModelTests(TestCase):
    """Test Task status and progress rules"""

    def setUp(self):
        self.project = TestDataFactory.create_project(created_by=TestDataFactory.create_user(role=ROLE_ADMIN))
        self.today = timezone.localdate()

    def test_total_cost_is_sum_of_parts(self):
        """Test total cost is labor plus material plus equipment"""
        task = TestDataFactory.create_task(
            self.project, labor_cost=Decimal('10.00'), material_cost=Decimal('5.50'), equipment_cost=Decimal('1.25')
        )
        self.assertEqual(task.total_cost, Decimal('16.75'))

    def test_total_cost_follows_update_fields(self):
        task = TestDataFactory.create_task(self.project)
        task.labor_cost = Decimal('30.00')
        task.save(update_fields=['labor_cost'])
        task.refresh_from_db()
        self.assertEqual(task.total_cost, Decimal('30.00'))

    def test_status_in_progress_from_zero(self):
        """Test starting a task without progress"""
        task = TestDataFactory.create_task(self.project)
        task.apply_status(Task.STATUS_EM_ANDAMENTO)
        self.assertEqual(task.progress_percentage, 50)
        self.assertEqual(task.start_date_actual, self.today)
        self.assertIsNone(task.end_date_actual)

    def test_status_in_progress_keeps_partial_progress(self):
        """Test starting a task keeps partial progress"""
        task = TestDataFactory.create_task(self.project, progress_percentage=30)
        task.apply_status(Task.STATUS_EM_ANDAMENTO)
        self.assertEqual(task.progress_percentage, 30)

    def test_status_done_sets_dates(self):
        """Test completing a task sets progress and end date"""
        task = TestDataFactory.create_task(self.project)
        task.apply_status(Task.STATUS_CONCLUIDA)
        self.assertEqual(task.progress_percentage, 100)
        self.assertEqual(task.start_date_actual, self.today)
        self.assertEqual(task.end_date_actual, self.today)

    def test_status_todo_resets(self):
        """Test moving back to to-do resets progress"""
        task = TestDataFactory.create_task(self.project, progress_percentage=60, start_date_actual=self.today)
        task.apply_status(Task.STATUS_A_FAZER)
        self.assertEqual(task.progress_percentage, 0)
        self.assertIsNone(task.start_date_actual)

    def test_blocked_keeps_progress(self):
        """Test blocking a task keeps its progress"""
        task = TestDataFactory.create_task(self.project, progress_percentage=40, status=Task.STATUS_EM_ANDAMENTO)
        task.apply_status(Task.STATUS_BLOQUEADA, notes='Waiting for concrete')
        self.assertEqual(task.progress_percentage, 40)
        self.assertIn('Status changed from EM_ANDAMENTO to BLOQUEADA: Waiting for concrete', task.notes)

    def test_progress_derives_status(self):
        """Test progress drives the status"""
        task = TestDataFactory.create_task(self.project)
        task.apply_progress(35)
        self.assertEqual(task.status, Task.STATUS_EM_ANDAMENTO)
        task.apply_progress(100)
        self.assertEqual(task.status, Task.STATUS_CONCLUIDA)
        self.assertEqual(task.end_date_actual, self.today)
        task.apply_progress(0)
        self.assertEqual(task.status, Task.STATUS_A_FAZER)
        self.assertIsNone(task.end_date_actual)

    def test_overdue(self):
        """Test overdue detection"""
        task = TestDataFactory.create_task(self.project, end_date_planned=self.today - timedelta(days=3))
        self.assertTrue(task.is_overdue)
        self.assertEqual(task.days_overdue(), 3)
        task.status = Task.STATUS_CONCLUIDA
        self.assertFalse(task.is_overdue)

    def test_hours_variance(self):
        """Test actual versus estimated hours"""
        task = TestDataFactory.create_task(self.project, estimated_hours=10, actual_hours=14)
        self.assertEqual(task.hours_variance, 4)
        self.assertIsNone(TestDataFactory.create_task(self.project).hours_variance)


class TaskAPITests(TestCase):
    """Test task endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.outsider = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=self.admin, team=[self.worker])
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)
        self.base = f'/api/v1/projects/{self.project.id}/tasks/'
        self.today = timezone.localdate()

    @override_settings(SGPC_NOTIFICATIONS_SYNC=True, EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
    def test_create_task_and_notify_assignee(self):
        """Test creating a task mails the assignee"""
        response = self.client.post(self.base, {
            'title': 'Fundação',
            'priority': 3,
            'labor_cost': '1000.00',
            'material_cost': '500.00',
            'assigned_user_id': self.worker.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_cost'], '1500.00')
        self.assertEqual(response.data['status'], Task.STATUS_A_FAZER)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [self.worker.email])
        self.project.refresh_from_db()
        self.assertEqual(self.project.realized_cost, Decimal('1500.00'))

    def test_duplicate_title_in_project(self):
        """Test duplicate titles in a project return 409"""
        TestDataFactory.create_task(self.project, title='Alvenaria')
        response = self.client.post(self.base, {'title': 'Alvenaria'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_same_title_in_other_project(self):
        """Test the same title is allowed in another project"""
        other = TestDataFactory.create_project(created_by=self.admin)
        TestDataFactory.create_task(other, title='Alvenaria')
        response = self.client.post(self.base, {'title': 'Alvenaria'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_invalid_priority(self):
        """Test an unknown priority is rejected"""
        response = self.client.post(self.base, {'title': 'X', 'priority': 7}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_end_before_start(self):
        """Test an end date before the start is rejected"""
        response = self.client.post(self.base, {
            'title': 'X',
            'start_date_planned': str(self.today),
            'end_date_planned': str(self.today - timedelta(days=1)),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid date')

    def test_unknown_assignee(self):
        """Test an unknown assignee returns 404"""
        response = self.client.post(self.base, {'title': 'X', 'assigned_user_id': 999999}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_outsider_cannot_see_tasks(self):
        """Test outsiders cannot see project tasks"""
        client = AuthenticatedAPIClient().authenticate_user(self.outsider)
        response = client.get(self.base)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_team_member_updates_task(self):
        """Test a team member updating a task"""
        task = TestDataFactory.create_task(self.project)
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.patch(f'{self.base}{task.id}/', {'progress_percentage': 40}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Task.STATUS_EM_ANDAMENTO)
        self.project.refresh_from_db()
        self.assertEqual(self.project.progress_percentage, Decimal('40.00'))

    def test_create_with_status_and_progress_keeps_both(self):
        """Test status and progress sent together are both stored"""
        response = self.client.post(self.base, {
            'title': 'Reboco', 'status': Task.STATUS_EM_ANDAMENTO, 'progress_percentage': 30,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Task.STATUS_EM_ANDAMENTO)
        self.assertEqual(response.data['progress_percentage'], 30)
        self.assertEqual(response.data['start_date_actual'], self.today.isoformat())

    def test_update_with_status_and_progress_keeps_both(self):
        task = TestDataFactory.create_task(self.project)
        response = self.client.patch(f'{self.base}{task.id}/', {
            'status': Task.STATUS_BLOQUEADA, 'progress_percentage': 70,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        task.refresh_from_db()
        self.assertEqual(task.status, Task.STATUS_BLOQUEADA)
        self.assertEqual(task.progress_percentage, 70)

    def test_team_member_cannot_delete(self):
        """Test team members cannot delete tasks"""
        task = TestDataFactory.create_task(self.project)
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.delete(f'{self.base}{task.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_delete_recalculates_project(self):
        """Test deleting a task recalculates the project"""
        task = TestDataFactory.create_task(self.project, labor_cost=Decimal('100.00'))
        self.project.recalculate_realized_cost()
        response = self.client.delete(f'{self.base}{task.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.project.refresh_from_db()
        self.assertEqual(self.project.realized_cost, Decimal('0.00'))

    def test_task_of_other_project_is_404(self):
        """Test a task addressed through another project returns 404"""
        other = TestDataFactory.create_project(created_by=self.admin)
        task = TestDataFactory.create_task(other)
        response = self.client.get(f'{self.base}{task.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_status_endpoint(self):
        """Test the status endpoint"""
        task = TestDataFactory.create_task(self.project)
        response = self.client.patch(f'{self.base}{task.id}/status/', {'status': 'concluida', 'notes': 'Done'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Task.STATUS_CONCLUIDA)
        self.assertEqual(response.data['progress_percentage'], 100)
        self.project.refresh_from_db()
        self.assertEqual(self.project.progress_percentage, Decimal('100.00'))

    def test_update_status_invalid(self):
        """Test the status endpoint with an unknown status"""
        task = TestDataFactory.create_task(self.project)
        response = self.client.patch(f'{self.base}{task.id}/status/', {'status': 'DONE'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid status')

    def test_kanban_groups_by_status(self):
        """Test the kanban board groups tasks by status"""
        TestDataFactory.create_task(self.project)
        TestDataFactory.create_task(self.project, status=Task.STATUS_CONCLUIDA, progress_percentage=100)
        response = self.client.get(f'{self.base}kanban/')
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(len(response.data[Task.STATUS_A_FAZER]), 1)
        self.assertEqual(len(response.data[Task.STATUS_CONCLUIDA]), 1)
        self.assertEqual(response.data[Task.STATUS_BLOQUEADA], [])

    def test_statistics(self):
        """Test task statistics"""
        TestDataFactory.create_task(self.project)
        TestDataFactory.create_task(self.project, status=Task.STATUS_CONCLUIDA, progress_percentage=100)
        TestDataFactory.create_task(self.project, end_date_planned=self.today - timedelta(days=1))
        response = self.client.get(f'{self.base}statistics/')
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(response.data['overdue'], 1)
        self.assertEqual(response.data['completion_percentage'], 33.33)

    def test_by_status_and_assigned(self):
        """Test listing by status and assigned tasks"""
        TestDataFactory.create_task(self.project, assigned_user=self.worker, status=Task.STATUS_EM_ANDAMENTO)
        TestDataFactory.create_task(self.project)
        response = self.client.get(f'{self.base}status/em_andamento/')
        self.assertEqual(len(response.data), 1)
        response = self.client.get(f'{self.base}assigned/{self.worker.id}/')
        self.assertEqual(len(response.data), 1)

    def test_user_cannot_list_others_assignments(self):
        """Test users cannot list other users' assignments"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        response = client.get(f'{self.base}assigned/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_overdue_requires_admin_or_manager(self):
        """Test overdue tasks are limited to admins and managers"""
        client = AuthenticatedAPIClient().authenticate_user(self.worker)
        self.assertEqual(client.get(f'{self.base}overdue/').status_code, status.HTTP_403_FORBIDDEN)
        manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.project.team_members.add(manager)
        client = AuthenticatedAPIClient().authenticate_user(manager)
        self.assertEqual(client.get(f'{self.base}overdue/').status_code, status.HTTP_200_OK)


@override_settings(SGPC_NOTIFICATIONS_SYNC=True, EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
class OverdueNotificationCommandTests(TestCase):
    """Test the notify_overdue_tasks management command"""

    def setUp(self):
        admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=admin)
        yesterday = timezone.localdate() - timedelta(days=1)
        TestDataFactory.create_task(self.project, assigned_user=self.worker, end_date_planned=yesterday)
        TestDataFactory.create_task(self.project, end_date_planned=yesterday)
        TestDataFactory.create_task(self.project, assigned_user=self.worker,
                                    end_date_planned=yesterday, status=Task.STATUS_CONCLUIDA)

    def test_sends_one_mail_per_assigned_overdue_task(self):
        """Test one mail per assigned overdue task"""
        out = StringIO()
        call_command('notify_overdue_tasks', stdout=out)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [self.worker.email])
        self.assertIn('1 overdue tasks', out.getvalue())

    def test_dry_run_sends_nothing(self):
        """Test dry run sends no mail"""
        call_command('notify_overdue_tasks', '--dry-run', stdout=StringIO())
        self.assertEqual(len(mail.outbox), 0)


class TaskAttachmentTests(TestCase):
    """Test task attachment upload, download and delete"""

    def setUp(self):
        self.media_root = tempfile.mkdtemp()
        self.settings_override = override_settings(MEDIA_ROOT=self.media_root)
        self.settings_override.enable()
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.worker = TestDataFactory.create_user(role=ROLE_USER)
        self.project = TestDataFactory.create_project(created_by=self.admin, team=[self.worker])
        self.task = TestDataFactory.create_task(self.project)
        self.client = AuthenticatedAPIClient().authenticate_user(self.worker)
        self.base = f'/api/v1/projects/{self.project.id}/tasks/'

    def tearDown(self):
        self.settings_override.disable()
        shutil.rmtree(self.media_root, ignore_errors=True)

    def _upload(self, client=None, name='laudo.pdf', content=b'%PDF-1.4 laudo'):
        upload = SimpleUploadedFile(name, content, content_type='application/pdf')
        return (client or self.client).post(f'{self.base}{self.task.id}/attachments/', {'file': upload}, format='multipart')

    def test_team_member_uploads_and_lists(self):
        """Test a team member uploading and listing task attachments"""
        response = self._upload()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['original_filename'], 'laudo.pdf')
        self.assertEqual(response.data['entity_type'], Attachment.ENTITY_TASK)
        listing = self.client.get(f'{self.base}{self.task.id}/attachments/')
        self.assertEqual([item['id'] for item in listing.data], [response.data['id']])

    def test_outsider_cannot_upload(self):
        """Test users outside the project team get 404"""
        outsider = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user(role=ROLE_USER))
        response = self._upload(client=outsider)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(Attachment.objects.exists())

    def test_upload_rejects_extension(self):
        """Test disallowed extensions are rejected"""
        response = self._upload(name='macro.bat')
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

    def test_upload_requires_file(self):
        response = self.client.post(f'{self.base}{self.task.id}/attachments/', {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_download(self):
        """Test downloading a task attachment"""
        attachment_id = self._upload().data['id']
        response = self.client.get(f'{self.base}attachments/{attachment_id}/download/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(b''.join(response.streaming_content), b'%PDF-1.4 laudo')
        self.assertIn('laudo.pdf', response['Content-Disposition'])
        response.close()

    def test_attachment_through_other_project_is_404(self):
        """Test a task attachment addressed through another project returns 404"""
        attachment_id = self._upload().data['id']
        other = TestDataFactory.create_project(created_by=self.admin, team=[self.worker])
        response = self.client.get(f'/api/v1/projects/{other.id}/tasks/attachments/{attachment_id}/download/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_team_member_cannot_delete(self):
        """Test the USER role cannot delete task attachments"""
        attachment_id = self._upload().data['id']
        response = self.client.delete(f'{self.base}attachments/{attachment_id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_delete_removes_record_and_file(self):
        """Test deleting a task attachment removes its record and stored file"""
        attachment_id = self._upload().data['id']
        stored = Attachment.objects.get(pk=attachment_id).file
        admin = AuthenticatedAPIClient().authenticate_user(self.admin)
        with self.captureOnCommitCallbacks(execute=True):
            response = admin.delete(f'{self.base}attachments/{attachment_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Attachment.objects.filter(pk=attachment_id).exists())
        self.assertFalse(stored.storage.exists(stored.name))
        response = admin.get(f'{self.base}attachments/{attachment_id}/download/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
