import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tasks', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Service',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, unique=True)),
                ('description', models.TextField(blank=True, null=True)),
                ('unit_of_measurement', models.CharField(max_length=50)),
                ('unit_labor_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('unit_material_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('unit_equipment_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'services',
                'ordering': ['name'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(unit_labor_cost__gte=0) & models.Q(unit_material_cost__gte=0) & models.Q(unit_equipment_cost__gte=0), name='services_unit_costs_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TaskService',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=12)),
                ('unit_cost_override', models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('service', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='task_services', to='costs.service')),
                ('task', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='task_services', to='tasks.task')),
            ],
            options={
                'db_table': 'task_services',
                'constraints': [
                    models.UniqueConstraint(fields=('task', 'service'), name='task_services_unique_pair'),
                    models.CheckConstraint(condition=models.Q(quantity__gt=0), name='task_services_quantity_positive'),
                ],
            },
        ),
    ]
