from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, AuditLog, Attachment, PasswordResetToken


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'full_name', 'phone', 'is_active', 'is_staff', 'created_at']
    list_filter = ['is_active', 'is_staff', 'groups', 'created_at']
    search_fields = ['email', 'full_name', 'phone']
    ordering = ['email']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('SGPC', {'fields': ('full_name', 'phone', 'hourly_rate')}),
    )
    add_fieldsets = (
        (None, {'classes': ('wide',), 'fields': ('email', 'username', 'full_name', 'password1', 'password2')}),
    )


@admin.register(PasswordResetToken)
class PasswordResetTokenAdmin(admin.ModelAdmin):
    list_display = ['user', 'expires_at', 'created_at']
    search_fields = ['user__email']
    readonly_fields = ['token', 'user', 'expires_at', 'created_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user_email', 'action', 'model_name', 'object_id', 'object_name', 'ip_address', 'created_at']
    list_filter = ['action', 'model_name', 'created_at']
    search_fields = ['user_email', 'model_name', 'object_id', 'object_name']
    ordering = ['-created_at']
    readonly_fields = ['user', 'user_email', 'action', 'model_name', 'object_id', 'object_name', 'changes', 'ip_address', 'created_at']


@admin.register(Attachment)
class AttachmentAdmin(admin.ModelAdmin):
    list_display = ['original_filename', 'entity_type', 'entity_id', 'file_size', 'uploaded_by', 'created_at']
    list_filter = ['entity_type', 'created_at']
    search_fields = ['original_filename']
