"""
Django management command that e-mails the assignee of every overdue task
"""
from django.core.management.base import BaseCommand

from backend.core import notifications
from backend.tasks.models import Task


class Command(BaseCommand):
    help = 'Send overdue notifications to the users assigned to overdue tasks'

    def add_arguments(self, parser):
        parser.add_argument(
            '--project-id',
            type=int,
            help='Only check tasks of this project',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List overdue tasks without sending e-mails',
        )

    def handle(self, *args, **options):
        tasks = Task.objects.overdue().filter(assigned_user__isnull=False).select_related('project', 'assigned_user')
        if options.get('project_id'):
            tasks = tasks.filter(project_id=options['project_id'])

        sent = 0
        for task in tasks:
            self.stdout.write(f"  {task.project.name} / {task.title} -> {task.assigned_user.email} (due {task.end_date_planned})")
            if not options.get('dry_run'):
                notifications.notify_task_overdue(task)
                sent += 1

        self.stdout.write(self.style.SUCCESS(f'\nCompleted: {tasks.count()} overdue tasks, {sent} notifications queued'))
