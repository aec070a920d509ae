from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models.functions import Lower


class Role(models.Model):
    """Application roles used for authorization"""
    ADMIN = 'ADMIN'
    CASHIER = 'CAJERO'

    name = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True)

    def save(self, *args, **kwargs):
        self.name = (self.name or '').strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'roles'
        ordering = ['name']


class User(AbstractUser):
    """Staff user with role, branch, MFA and lockout state"""
    nombre = models.CharField(max_length=200, blank=True)
    email = models.EmailField(unique=True)
    role = models.ForeignKey(Role, on_delete=models.PROTECT, null=True, blank=True, related_name='users')
    branch = models.ForeignKey('locations.Branch', on_delete=models.SET_NULL, null=True, blank=True, related_name='users')
    is_active = models.BooleanField(default=True)

    # MFA (TOTP)
    mfa_enabled = models.BooleanField(default=False)
    mfa_secret = models.CharField(max_length=64, blank=True, null=True)
    mfa_temp_secret = models.CharField(max_length=64, blank=True, null=True)
    mfa_confirmed_at = models.DateTimeField(null=True, blank=True)

    # Login lockout
    password_changed_at = models.DateTimeField(null=True, blank=True)
    failed_login_count = models.PositiveIntegerField(default=0)
    lock_until = models.DateTimeField(null=True, blank=True)

    # Forgot-password throttling, counted per local day
    reset_day = models.DateField(null=True, blank=True)
    reset_attempts_today = models.PositiveIntegerField(default=0)
    reset_emails_today = models.PositiveIntegerField(default=0)
    reset_last_sent_at = models.DateTimeField(null=True, blank=True)
    reset_lock_until = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def role_name(self):
        return self.role.name if self.role_id else ''

    @property
    def is_admin_role(self):
        return self.role_name == Role.ADMIN

    def display_name(self):
        return self.nombre or self.get_full_name() or self.username

    class Meta:
        db_table = 'users'
        constraints = [
            models.UniqueConstraint(Lower('email'), name='uniq_users_email_ci'),
        ]


class PasswordResetToken(models.Model):
    """One-time password reset token; only the sha256 of the token is stored"""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='reset_tokens')
    token_hash = models.CharField(max_length=64, db_index=True)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)
    ip = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'password_reset_tokens'
        ordering = ['-created_at']


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('login', 'Login'),
        ('login_failed', 'Login Failed'),
        ('password_reset', 'Password Reset'),
        ('mfa_change', 'MFA Changed'),
        ('stock_movement', 'Stock Movement'),
        ('sale', 'Sale Registered'),
        ('archive', 'Archive'),
        ('import', 'Import'),
        ('bulk_update', 'Bulk Update'),
        ('purchase_confirm', 'Purchase Confirmed'),
        ('cash_open', 'Cash Register Opened'),
        ('cash_close', 'Cash Register Closed'),
        ('petty_cash_delivery', 'Petty Cash Delivery'),
        ('petty_cash_exchange', 'Petty Cash Exchange'),
        ('price_change', 'Price Change'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True)
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_audit_created'),
            models.Index(fields=['action'], name='idx_audit_action'),
            models.Index(fields=['model_name'], name='idx_audit_model'),
        ]
