from django.urls import path
from . import admin_views
from .views import (
    login, register, me,
    mfa_setup, mfa_confirm, mfa_disable, mfa_verify_login,
    forgot_password, reset_password_validate, reset_password,
)

urlpatterns = [
    # Auth endpoints
    path('auth/login/', login, name='auth-login'),
    path('auth/register/', register, name='auth-register'),
    path('auth/me/', me, name='auth-me'),
    path('auth/mfa/setup/', mfa_setup, name='auth-mfa-setup'),
    path('auth/mfa/confirm/', mfa_confirm, name='auth-mfa-confirm'),
    path('auth/mfa/disable/', mfa_disable, name='auth-mfa-disable'),
    path('auth/mfa/verify-login/', mfa_verify_login, name='auth-mfa-verify-login'),
    path('auth/forgot-password/', forgot_password, name='auth-forgot-password'),
    path('auth/reset-password/validate/', reset_password_validate, name='auth-reset-password-validate'),
    path('auth/reset-password/', reset_password, name='auth-reset-password'),

    # Admin endpoints
    path('admin/roles/', admin_views.role_list, name='admin-roles'),
    path('admin/sucursales/', admin_views.branch_list, name='admin-branches'),
    path('admin/users/', admin_views.user_list, name='admin-users'),
    path('admin/users/invite/', admin_views.user_invite, name='admin-user-invite'),
    path('admin/users/<int:pk>/', admin_views.user_detail, name='admin-user-detail'),
]
