from decimal import Decimal

from django.conf import settings
from django.db import models, transaction
from django.db.models import F, Q

from backend.core.exceptions import BusinessRuleViolation, InsufficientStock, InvalidMovementType, SGPCException


class MaterialQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def low_stock(self):
        return self.filter(is_active=True, current_stock__lt=F('minimum_stock'))


class Material(models.Model):
    """Construction material with its stock level"""
    # Largest value current_stock (12 digits, 3 decimals) can hold
    MAX_STOCK = Decimal('999999999.999')

    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, null=True)
    unit_of_measure = models.CharField(max_length=50)
    unit_price = models.DecimalField(max_digits=15, decimal_places=2)
    supplier = models.CharField(max_length=255, blank=True, null=True)
    current_stock = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    minimum_stock = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0.000'))
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = MaterialQuerySet.as_manager()

    class Meta:
        db_table = 'materials'
        ordering = ['name']
        indexes = [
            models.Index(fields=['supplier'], name='idx_material_supplier'),
            models.Index(fields=['is_active'], name='idx_material_active'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(unit_price__gt=0), name='materials_unit_price_positive'),
            models.CheckConstraint(condition=Q(current_stock__gte=0), name='materials_current_stock_non_negative'),
            models.CheckConstraint(condition=Q(minimum_stock__gte=0), name='materials_minimum_stock_non_negative'),
        ]

    def __str__(self):
        return self.name

    @property
    def is_low_stock(self):
        return self.current_stock < self.minimum_stock

    def has_stock(self, quantity):
        return self.current_stock >= quantity

    def add_stock(self, quantity, user=None, observation=None):
        return self.move_stock(StockMovement.TYPE_ENTRADA, quantity, user, observation)

    def remove_stock(self, quantity, user=None, observation=None):
        return self.move_stock(StockMovement.TYPE_SAIDA, quantity, user, observation)

    def move_stock(self, movement_type, quantity, user=None, observation=None):
        """Apply an in/out movement under a row lock and record it"""
        movement_type = StockMovement.normalize_type(movement_type)
        quantity = Decimal(str(quantity))
        if not quantity.is_finite() or quantity <= 0:
            raise SGPCException('Quantity must be greater than zero.')

        with transaction.atomic():
            locked = Material.objects.select_for_update().get(pk=self.pk)
            before = locked.current_stock
            if movement_type == StockMovement.TYPE_SAIDA:
                if before < quantity:
                    raise InsufficientStock(
                        f"Insufficient stock for material '{locked.name}'. Available: {before}, requested: {quantity}"
                    )
                after = before - quantity
            else:
                after = before + quantity
                if after > Material.MAX_STOCK:
                    raise BusinessRuleViolation(
                        f"Stock for material '{locked.name}' would exceed the maximum of {Material.MAX_STOCK}"
                    )
            locked.current_stock = after
            locked.save(update_fields=['current_stock', 'updated_at'])
            movement = StockMovement.objects.create(
                material=locked,
                movement_type=movement_type,
                quantity=quantity,
                stock_before=before,
                stock_after=after,
                observation=observation,
                user=user,
            )
        self.current_stock = after
        self.updated_at = locked.updated_at
        return movement


class StockMovement(models.Model):
    """Stock entry or exit of a material"""
    TYPE_ENTRADA = 'ENTRADA'
    TYPE_SAIDA = 'SAIDA'
    MOVEMENT_TYPE_CHOICES = [
        (TYPE_ENTRADA, 'Entrada'),
        (TYPE_SAIDA, 'Saída'),
    ]
    TYPE_ALIASES = {
        'ENTRADA': TYPE_ENTRADA,
        'IN': TYPE_ENTRADA,
        'SAIDA': TYPE_SAIDA,
        'OUT': TYPE_SAIDA,
    }

    material = models.ForeignKey(Material, on_delete=models.CASCADE, related_name='movements')
    movement_type = models.CharField(max_length=10, choices=MOVEMENT_TYPE_CHOICES)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    stock_before = models.DecimalField(max_digits=12, decimal_places=3)
    stock_after = models.DecimalField(max_digits=12, decimal_places=3)
    observation = models.TextField(blank=True, null=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_movements')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['material', 'created_at'], name='idx_movement_material_date'),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity} {self.material.name}"

    @classmethod
    def normalize_type(cls, value):
        movement_type = cls.TYPE_ALIASES.get(str(value or '').strip().upper())
        if movement_type is None:
            raise InvalidMovementType(f"Invalid movement type: {value}. Use 'ENTRADA' or 'SAIDA'.")
        return movement_type
