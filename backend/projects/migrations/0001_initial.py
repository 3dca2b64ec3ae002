import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Project',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, unique=True)),
                ('description', models.TextField(blank=True, null=True)),
                ('start_date_planned', models.DateField(blank=True, null=True)),
                ('end_date_planned', models.DateField(blank=True, null=True)),
                ('start_date_actual', models.DateField(blank=True, null=True)),
                ('end_date_actual', models.DateField(blank=True, null=True)),
                ('total_budget', models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ('realized_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('progress_percentage', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=5)),
                ('client', models.CharField(blank=True, max_length=255, null=True)),
                ('status', models.CharField(choices=[('PLANEJAMENTO', 'Planejamento'), ('EM_ANDAMENTO', 'Em Andamento'), ('PAUSADO', 'Pausado'), ('CONCLUIDO', 'Concluído'), ('CANCELADO', 'Cancelado')], default='PLANEJAMENTO', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_projects', to=settings.AUTH_USER_MODEL)),
                ('team_members', models.ManyToManyField(blank=True, db_table='project_team', related_name='projects', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'projects',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='idx_project_status'),
                    models.Index(fields=['client'], name='idx_project_client'),
                    models.Index(fields=['end_date_planned'], name='idx_project_end_planned'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(total_budget__isnull=True) | models.Q(total_budget__gte=0), name='projects_total_budget_non_negative'),
                    models.CheckConstraint(condition=models.Q(realized_cost__gte=0), name='projects_realized_cost_non_negative'),
                    models.CheckConstraint(condition=models.Q(progress_percentage__gte=0) & models.Q(progress_percentage__lte=100), name='projects_progress_range'),
                ],
            },
        ),
    ]
