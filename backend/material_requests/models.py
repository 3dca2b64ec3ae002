from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from backend.materials.models import Material
from backend.projects.models import Project


class MaterialRequest(models.Model):
    """Request for materials from stock on behalf of a project"""
    STATUS_PENDENTE = 'PENDENTE'
    STATUS_APROVADA = 'APROVADA'
    STATUS_REJEITADA = 'REJEITADA'
    STATUS_CHOICES = [
        (STATUS_PENDENTE, 'Pendente'),
        (STATUS_APROVADA, 'Aprovada'),
        (STATUS_REJEITADA, 'Rejeitada'),
    ]

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='material_requests')
    requester = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='material_requests')
    request_date = models.DateField(default=timezone.localdate)
    needed_date = models.DateField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDENTE)
    approved_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_material_requests')
    approved_at = models.DateTimeField(blank=True, null=True)
    rejection_reason = models.TextField(blank=True, null=True)
    observations = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'material_requests'
        ordering = ['-request_date', '-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_matreq_status'),
            models.Index(fields=['project', 'status'], name='idx_matreq_project_status'),
        ]

    def __str__(self):
        return f"Request #{self.id} - {self.project.name}"

    @property
    def is_pending(self):
        return self.status == self.STATUS_PENDENTE

    @property
    def item_count(self):
        return self.items.count()

    @property
    def total_amount(self):
        return sum((item.total_price for item in self.items.all()), Decimal('0.00'))


class MaterialRequestItem(models.Model):
    """Requested quantity of one material"""
    material_request = models.ForeignKey(MaterialRequest, on_delete=models.CASCADE, related_name='items')
    material = models.ForeignKey(Material, on_delete=models.PROTECT, related_name='request_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=15, decimal_places=2)
    observations = models.TextField(blank=True, null=True)

    class Meta:
        db_table = 'material_request_items'
        ordering = ['id']
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gt=0), name='material_request_items_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.material.name} x {self.quantity}"

    def save(self, *args, **kwargs):
        # Price is frozen at request time
        if self.unit_price is None:
            self.unit_price = self.material.unit_price
        super().save(*args, **kwargs)

    @property
    def total_price(self):
        return (self.quantity * self.unit_price).quantize(Decimal('0.01'))
