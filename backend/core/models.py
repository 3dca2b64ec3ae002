import os
import uuid
from datetime import timedelta

from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models
from django.utils import timezone


ROLE_ADMIN = 'ADMIN'
ROLE_MANAGER = 'MANAGER'
ROLE_USER = 'USER'
ROLE_NAMES = [ROLE_ADMIN, ROLE_MANAGER, ROLE_USER]


class SGPCUserManager(UserManager):
    """Users log in with their e-mail; username mirrors it"""

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('username', email)
        return super().create_user(email=email, password=password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('username', email)
        return super().create_superuser(email=email, password=password, **extra_fields)


class User(AbstractUser):
    """Extended user model with additional fields"""
    email = models.EmailField(unique=True)
    full_name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True, null=True)
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username', 'full_name']

    objects = SGPCUserManager()

    class Meta:
        db_table = 'users'
        constraints = [
            models.CheckConstraint(
                condition=models.Q(hourly_rate__isnull=True) | models.Q(hourly_rate__gte=0),
                name='users_hourly_rate_non_negative',
            ),
        ]

    def __str__(self):
        return self.full_name or self.email

    @property
    def role_names(self):
        return list(self.groups.values_list('name', flat=True))

    def has_role(self, *roles):
        names = self.role_names
        return any(role in names for role in roles)

    @property
    def primary_role(self):
        """First role by priority, USER when the account has none"""
        names = self.role_names
        for role in ROLE_NAMES:
            if role in names:
                return role
        return ROLE_USER


def generate_reset_token():
    return str(uuid.uuid4())


class PasswordResetToken(models.Model):
    """One-shot token e-mailed by the forgot-password flow"""
    VALIDITY = timedelta(hours=24)

    token = models.CharField(max_length=64, unique=True, default=generate_reset_token)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='password_reset_tokens')
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'password_reset_tokens'

    def save(self, *args, **kwargs):
        if not self.expires_at:
            self.expires_at = timezone.now() + self.VALIDITY
        super().save(*args, **kwargs)

    def is_expired(self):
        return timezone.now() > self.expires_at

    def __str__(self):
        return f"Reset token for {self.user.email}"


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('CREATE', 'Create'),
        ('UPDATE', 'Update'),
        ('DELETE', 'Delete'),
        ('APPROVE', 'Approve'),
        ('REJECT', 'Reject'),
        ('STATUS_CHANGE', 'Status Change'),
        ('STOCK_MOVEMENT', 'Stock Movement'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    user_email = models.CharField(max_length=255, blank=True, null=True)
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., project name, task title)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_audit_created'),
            models.Index(fields=['action'], name='idx_audit_action'),
            models.Index(fields=['model_name', 'object_id'], name='idx_audit_model_object'),
        ]

    def __str__(self):
        return f"{self.action} {self.model_name}#{self.object_id}"


def attachment_upload_to(instance, filename):
    """<entity type>/<entity id>/<timestamp>_<8 hex chars><ext>"""
    extension = os.path.splitext(filename)[1].lower()
    stamp = timezone.now().strftime('%Y%m%d%H%M%S')
    return f"{instance.entity_type.lower()}/{instance.entity_id}/{stamp}_{uuid.uuid4().hex[:8]}{extension}"


class Attachment(models.Model):
    """File attached to a project or a task"""
    ENTITY_PROJECT = 'PROJECT'
    ENTITY_TASK = 'TASK'
    ENTITY_CHOICES = [
        (ENTITY_PROJECT, 'Project'),
        (ENTITY_TASK, 'Task'),
    ]

    file = models.FileField(upload_to=attachment_upload_to, max_length=500)
    original_filename = models.CharField(max_length=255)
    content_type = models.CharField(max_length=100, blank=True, null=True)
    file_size = models.BigIntegerField(default=0)
    entity_type = models.CharField(max_length=20, choices=ENTITY_CHOICES)
    entity_id = models.BigIntegerField()
    uploaded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='attachments')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'attachments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='idx_attachment_entity'),
        ]

    def __str__(self):
        return self.original_filename

    @property
    def filename(self):
        return os.path.basename(self.file.name)
