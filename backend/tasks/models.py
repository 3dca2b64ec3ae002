from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from backend.projects.models import Project


class TaskQuerySet(models.QuerySet):
    def overdue(self, today=None):
        today = today or timezone.localdate()
        return self.filter(end_date_planned__lt=today).exclude(status=Task.STATUS_CONCLUIDA)


class Task(models.Model):
    """Unit of work inside a project, carrying its own progress and costs"""
    STATUS_A_FAZER = 'A_FAZER'
    STATUS_EM_ANDAMENTO = 'EM_ANDAMENTO'
    STATUS_CONCLUIDA = 'CONCLUIDA'
    STATUS_BLOQUEADA = 'BLOQUEADA'
    STATUS_CANCELADA = 'CANCELADA'
    STATUS_CHOICES = [
        (STATUS_A_FAZER, 'A Fazer'),
        (STATUS_EM_ANDAMENTO, 'Em Andamento'),
        (STATUS_CONCLUIDA, 'Concluída'),
        (STATUS_BLOQUEADA, 'Bloqueada'),
        (STATUS_CANCELADA, 'Cancelada'),
    ]
    STATUS_VALUES = [choice[0] for choice in STATUS_CHOICES]

    PRIORITY_CHOICES = [
        (1, 'Baixa'),
        (2, 'Média'),
        (3, 'Alta'),
        (4, 'Crítica'),
    ]

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_A_FAZER)
    start_date_planned = models.DateField(blank=True, null=True)
    end_date_planned = models.DateField(blank=True, null=True)
    start_date_actual = models.DateField(blank=True, null=True)
    end_date_actual = models.DateField(blank=True, null=True)
    progress_percentage = models.PositiveSmallIntegerField(default=0)
    priority = models.PositiveSmallIntegerField(choices=PRIORITY_CHOICES, default=1)
    estimated_hours = models.PositiveIntegerField(blank=True, null=True)
    actual_hours = models.PositiveIntegerField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    labor_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    material_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    equipment_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    total_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'), editable=False)
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='tasks')
    assigned_user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_tasks')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='created_tasks')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TaskQuerySet.as_manager()

    class Meta:
        db_table = 'tasks'
        ordering = ['-priority', 'end_date_planned', 'id']
        indexes = [
            models.Index(fields=['project', 'status'], name='idx_task_project_status'),
            models.Index(fields=['assigned_user'], name='idx_task_assigned_user'),
            models.Index(fields=['end_date_planned'], name='idx_task_end_planned'),
        ]
        constraints = [
            models.UniqueConstraint(fields=['project', 'title'], name='tasks_unique_title_per_project'),
            models.CheckConstraint(condition=Q(progress_percentage__lte=100), name='tasks_progress_range'),
            models.CheckConstraint(condition=Q(priority__gte=1) & Q(priority__lte=4), name='tasks_priority_range'),
            models.CheckConstraint(
                condition=Q(labor_cost__gte=0) & Q(material_cost__gte=0) & Q(equipment_cost__gte=0),
                name='tasks_costs_non_negative',
            ),
        ]

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        self.total_cost = self.calculate_total_cost()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and {'labor_cost', 'material_cost', 'equipment_cost'} & set(update_fields):
            kwargs['update_fields'] = set(update_fields) | {'total_cost'}
        super().save(*args, **kwargs)

    def calculate_total_cost(self):
        return (self.labor_cost or Decimal('0.00')) + (self.material_cost or Decimal('0.00')) + (self.equipment_cost or Decimal('0.00'))

    @property
    def is_overdue(self):
        return bool(
            self.end_date_planned
            and self.end_date_planned < timezone.localdate()
            and self.status != self.STATUS_CONCLUIDA
        )

    @property
    def hours_variance(self):
        if self.estimated_hours is None or self.actual_hours is None:
            return None
        return self.actual_hours - self.estimated_hours

    def days_overdue(self):
        if not self.is_overdue:
            return 0
        return (timezone.localdate() - self.end_date_planned).days

    def append_note(self, text):
        stamp = timezone.localdate().isoformat()
        line = f"[{stamp}] {text}"
        self.notes = f"{self.notes}\n{line}" if self.notes else line

    def apply_progress(self, progress):
        """Set progress and derive status and actual dates from it"""
        today = timezone.localdate()
        self.progress_percentage = progress
        if progress == 0:
            self.status = self.STATUS_A_FAZER
            self.start_date_actual = None
            self.end_date_actual = None
        elif progress < 100:
            self.status = self.STATUS_EM_ANDAMENTO
            if self.start_date_actual is None:
                self.start_date_actual = today
            self.end_date_actual = None
        else:
            self.status = self.STATUS_CONCLUIDA
            self.end_date_actual = today
            if self.start_date_actual is None:
                self.start_date_actual = today

    def apply_status(self, new_status, notes=None):
        """Move to a new status, adjusting progress and actual dates to match"""
        today = timezone.localdate()
        old_status = self.status
        self.status = new_status

        if new_status == self.STATUS_A_FAZER:
            self.progress_percentage = 0
            self.start_date_actual = None
            self.end_date_actual = None
        elif new_status == self.STATUS_EM_ANDAMENTO:
            if self.progress_percentage in (0, 100):
                self.progress_percentage = 50
            if self.start_date_actual is None:
                self.start_date_actual = today
            self.end_date_actual = None
        elif new_status == self.STATUS_CONCLUIDA:
            self.progress_percentage = 100
            self.end_date_actual = today
            if self.start_date_actual is None:
                self.start_date_actual = today
        # BLOQUEADA and CANCELADA keep progress and dates

        if notes:
            self.append_note(f"Status changed from {old_status} to {new_status}: {notes}")
        return old_status
