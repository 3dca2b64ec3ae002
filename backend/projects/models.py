from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Avg, Q, Sum
from django.utils import timezone

from backend.core.models import ROLE_ADMIN


class ProjectQuerySet(models.QuerySet):
    def visible_to(self, user):
        """Admins see projects they created or belong to; everyone else sees team projects"""
        if user.has_role(ROLE_ADMIN):
            return self.filter(Q(created_by=user) | Q(team_members=user)).distinct()
        return self.filter(team_members=user).distinct()

    def delayed(self, today=None):
        today = today or timezone.localdate()
        return self.filter(end_date_planned__lt=today).exclude(
            status__in=[Project.STATUS_CONCLUIDO, Project.STATUS_CANCELADO]
        )


class Project(models.Model):
    """Construction project"""
    STATUS_PLANEJAMENTO = 'PLANEJAMENTO'
    STATUS_EM_ANDAMENTO = 'EM_ANDAMENTO'
    STATUS_PAUSADO = 'PAUSADO'
    STATUS_CONCLUIDO = 'CONCLUIDO'
    STATUS_CANCELADO = 'CANCELADO'
    STATUS_CHOICES = [
        (STATUS_PLANEJAMENTO, 'Planejamento'),
        (STATUS_EM_ANDAMENTO, 'Em Andamento'),
        (STATUS_PAUSADO, 'Pausado'),
        (STATUS_CONCLUIDO, 'Concluído'),
        (STATUS_CANCELADO, 'Cancelado'),
    ]
    STATUS_VALUES = [choice[0] for choice in STATUS_CHOICES]

    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, null=True)
    start_date_planned = models.DateField(blank=True, null=True)
    end_date_planned = models.DateField(blank=True, null=True)
    start_date_actual = models.DateField(blank=True, null=True)
    end_date_actual = models.DateField(blank=True, null=True)
    total_budget = models.DecimalField(max_digits=15, decimal_places=2, blank=True, null=True)
    realized_cost = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    progress_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    client = models.CharField(max_length=255, blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PLANEJAMENTO)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='created_projects')
    team_members = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name='projects', db_table='project_team')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProjectQuerySet.as_manager()

    class Meta:
        db_table = 'projects'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_project_status'),
            models.Index(fields=['client'], name='idx_project_client'),
            models.Index(fields=['end_date_planned'], name='idx_project_end_planned'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_budget__isnull=True) | Q(total_budget__gte=0),
                name='projects_total_budget_non_negative',
            ),
            models.CheckConstraint(condition=Q(realized_cost__gte=0), name='projects_realized_cost_non_negative'),
            models.CheckConstraint(
                condition=Q(progress_percentage__gte=0) & Q(progress_percentage__lte=100),
                name='projects_progress_range',
            ),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if self.start_date_planned and self.end_date_planned and self.end_date_planned < self.start_date_planned:
            raise ValidationError({'end_date_planned': 'Planned end date cannot be before the planned start date.'})
        if self.start_date_actual and self.end_date_actual and self.end_date_actual < self.start_date_actual:
            raise ValidationError({'end_date_actual': 'Actual end date cannot be before the actual start date.'})

    @property
    def budget_variance(self):
        return (self.total_budget or Decimal('0.00')) - (self.realized_cost or Decimal('0.00'))

    @property
    def is_over_budget(self):
        budget = self.total_budget or Decimal('0.00')
        return budget > 0 and (self.realized_cost or Decimal('0.00')) > budget

    def is_active(self):
        return self.status == self.STATUS_EM_ANDAMENTO

    def is_finalized(self):
        return self.status in (self.STATUS_CONCLUIDO, self.STATUS_CANCELADO)

    def is_delayed(self, today=None):
        today = today or timezone.localdate()
        return bool(self.end_date_planned and self.end_date_planned < today and not self.is_finalized())

    def is_team_member(self, user):
        return self.team_members.filter(pk=user.pk).exists()

    def recalculate_progress(self):
        """Average of task progress, 0 with no tasks"""
        average = self.tasks.aggregate(avg=Avg('progress_percentage'))['avg']
        progress = Decimal(str(average)) if average is not None else Decimal('0')
        self.progress_percentage = progress.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        self.save(update_fields=['progress_percentage', 'updated_at'])
        return self.progress_percentage

    def recalculate_realized_cost(self):
        """Sum of task total costs; returns True when the update pushed the project over budget"""
        was_over_budget = self.is_over_budget
        total = self.tasks.aggregate(total=Sum('total_cost'))['total'] or Decimal('0.00')
        self.realized_cost = total
        self.save(update_fields=['realized_cost', 'updated_at'])
        return self.is_over_budget and not was_over_budget
