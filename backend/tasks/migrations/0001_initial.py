import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('projects', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Task',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True, null=True)),
                ('status', models.CharField(choices=[('A_FAZER', 'A Fazer'), ('EM_ANDAMENTO', 'Em Andamento'), ('CONCLUIDA', 'Concluída'), ('BLOQUEADA', 'Bloqueada'), ('CANCELADA', 'Cancelada')], default='A_FAZER', max_length=20)),
                ('start_date_planned', models.DateField(blank=True, null=True)),
                ('end_date_planned', models.DateField(blank=True, null=True)),
                ('start_date_actual', models.DateField(blank=True, null=True)),
                ('end_date_actual', models.DateField(blank=True, null=True)),
                ('progress_percentage', models.PositiveSmallIntegerField(default=0)),
                ('priority', models.PositiveSmallIntegerField(choices=[(1, 'Baixa'), (2, 'Média'), (3, 'Alta'), (4, 'Crítica')], default=1)),
                ('estimated_hours', models.PositiveIntegerField(blank=True, null=True)),
                ('actual_hours', models.PositiveIntegerField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('labor_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('material_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('equipment_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('total_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), editable=False, max_digits=15)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('project', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tasks', to='projects.project')),
                ('assigned_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_tasks', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_tasks', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'tasks',
                'ordering': ['-priority', 'end_date_planned', 'id'],
                'indexes': [
                    models.Index(fields=['project', 'status'], name='idx_task_project_status'),
                    models.Index(fields=['assigned_user'], name='idx_task_assigned_user'),
                    models.Index(fields=['end_date_planned'], name='idx_task_end_planned'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('project', 'title'), name='tasks_unique_title_per_project'),
                    models.CheckConstraint(condition=models.Q(progress_percentage__lte=100), name='tasks_progress_range'),
                    models.CheckConstraint(condition=models.Q(priority__gte=1) & models.Q(priority__lte=4), name='tasks_priority_range'),
                    models.CheckConstraint(condition=models.Q(labor_cost__gte=0) & models.Q(material_cost__gte=0) & models.Q(equipment_cost__gte=0), name='tasks_costs_non_negative'),
                ],
            },
        ),
    ]
