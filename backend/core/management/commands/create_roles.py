from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission

from backend.core.models import ROLE_ADMIN, ROLE_MANAGER, ROLE_USER


class Command(BaseCommand):
    help = 'Create the SGPC role groups: ADMIN, MANAGER, USER'

    def handle(self, *args, **options):
        roles_config = [
            {
                'name': ROLE_ADMIN,
                'description': 'Full access, including user management and project deletion',
            },
            {
                'name': ROLE_MANAGER,
                'description': 'Manages projects, tasks, costs, materials and approves material requests',
            },
            {
                'name': ROLE_USER,
                'description': 'Works on team projects and tasks, reads materials, files material requests',
            },
        ]

        created_count = 0
        existing_count = 0

        for role_config in roles_config:
            group, created = Group.objects.get_or_create(name=role_config['name'])

            if created:
                self.stdout.write(self.style.SUCCESS(f'✓ Created role: {role_config["name"]}'))
                created_count += 1
            else:
                self.stdout.write(f'  Role already exists: {role_config["name"]}')
                existing_count += 1

            # Django admin permissions follow the application roles
            if group.name == ROLE_ADMIN:
                group.permissions.set(Permission.objects.all())
                self.stdout.write('  Added all permissions to ADMIN role')
            elif group.name == ROLE_MANAGER:
                group.permissions.set(
                    Permission.objects.exclude(content_type__app_label__in=['admin', 'auth', 'contenttypes', 'sessions'])
                )
                self.stdout.write('  Added module permissions to MANAGER role')
            self.stdout.write(f'  {role_config["description"]}')

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {created_count} roles created, {existing_count} roles already existed'
        ))
