from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, Role, AuditLog, PasswordResetToken


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'nombre', 'role', 'branch', 'is_active', 'mfa_enabled']
    list_filter = ['is_active', 'role', 'branch', 'mfa_enabled']
    search_fields = ['username', 'email', 'nombre']
    ordering = ['username']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Joyeria', {'fields': ('nombre', 'role', 'branch', 'mfa_enabled', 'failed_login_count',
                                'lock_until', 'password_changed_at')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Joyeria', {'fields': ('email', 'nombre', 'role', 'branch')}),
    )


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'description']
    search_fields = ['name']


@admin.register(PasswordResetToken)
class PasswordResetTokenAdmin(admin.ModelAdmin):
    list_display = ['user', 'expires_at', 'used_at', 'ip', 'created_at']
    readonly_fields = ['user', 'token_hash', 'expires_at', 'used_at', 'ip', 'user_agent', 'created_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'action', 'model_name', 'object_id', 'ip_address', 'created_at']
    list_filter = ['action', 'model_name', 'created_at']
    search_fields = ['user__username', 'model_name', 'object_id']
    ordering = ['-created_at']
    readonly_fields = ['user', 'action', 'model_name', 'object_id', 'object_name', 'changes', 'ip_address', 'created_at']
