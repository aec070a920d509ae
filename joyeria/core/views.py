import hashlib
import logging
import secrets
from datetime import timedelta

import pyotp
from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.throttling import AnonRateThrottle
from rest_framework_simplejwt.exceptions import TokenError

from .mailer import send_password_reset_email
from .models import PasswordResetToken, Role, User
from .permissions import IsAdminRole
from .serializers import UserSerializer
from .tokens import MfaToken, issue_access_token, issue_mfa_token
from .utils import (
    create_audit_log, error_response, get_client_ip, get_request_user, ok_response,
)

logger = logging.getLogger('joyeria.auth')

MAX_FAILED_LOGINS = 8
LOGIN_LOCK_MINUTES = 15
RESET_TOKEN_MINUTES = 15
RESET_MAX_ATTEMPTS_PER_DAY = 10
RESET_MAX_EMAILS_PER_DAY = 5
RESET_COOLDOWN = timedelta(minutes=2)
RESET_LOCK_HOURS = 24
MIN_PASSWORD_LENGTH = 8
FORGOT_PASSWORD_MESSAGE = 'Si el correo existe, se enviará un enlace de recuperación.'


class LoginRateThrottle(AnonRateThrottle):
    scope = 'login'


class PasswordResetRateThrottle(AnonRateThrottle):
    scope = 'password_reset'


def sha256_hex(value):
    return hashlib.sha256(str(value).encode()).hexdigest()


def make_reset_token():
    return secrets.token_urlsafe(32)


def find_user_by_identifier(identifier):
    """Case-insensitive lookup by e-mail or username"""
    identifier = (identifier or '').strip()
    if not identifier:
        return None
    return (
        User.objects.select_related('role', 'branch')
        .filter(Q(email__iexact=identifier) | Q(username__iexact=identifier))
        .first()
    )


def session_payload(user):
    return {
        'token': str(issue_access_token(user)),
        'user': UserSerializer(user).data,
    }


def register_failed_login(user, now):
    """Count a failed password; the account locks after MAX_FAILED_LOGINS"""
    failed = user.failed_login_count + 1
    lock_until = now + timedelta(minutes=LOGIN_LOCK_MINUTES) if failed >= MAX_FAILED_LOGINS else None
    User.objects.filter(pk=user.pk).update(failed_login_count=failed, lock_until=lock_until)
    if lock_until:
        logger.warning(f"User {user.username} locked until {lock_until.isoformat()} after {failed} failed logins")
    return failed, lock_until


def issue_reset_token(user, request=None, now=None):
    """
    Invalidate the user's active reset tokens and create a new one.
    Returns the raw token; only its hash is stored.
    """
    now = now or timezone.now()
    PasswordResetToken.objects.filter(user=user, used_at__isnull=True, expires_at__gt=now).update(used_at=now)
    raw_token = make_reset_token()
    record = PasswordResetToken.objects.create(
        user=user,
        token_hash=sha256_hex(raw_token),
        expires_at=now + timedelta(minutes=RESET_TOKEN_MINUTES),
        ip=get_client_ip(request) if request else None,
        user_agent=(request.META.get('HTTP_USER_AGENT') or '')[:500] if request else None,
    )
    return raw_token, record


def find_valid_reset_token(email, raw_token):
    """Return ``(record, error_message)`` for an e-mail/token pair"""
    record = (
        PasswordResetToken.objects.select_related('user')
        .filter(token_hash=sha256_hex(raw_token))
        .first()
    )
    if record is None or record.used_at is not None:
        return None, 'Enlace inválido o ya utilizado.'
    if record.expires_at < timezone.now():
        return None, 'Enlace vencido. Solicite uno nuevo.'
    if record.user.email.strip().lower() != str(email).strip().lower() or not record.user.is_active:
        return None, 'Enlace inválido.'
    return record, None


# Login

@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def login(request):
    """Password login with lockout; ADMIN accounts with MFA get a second step"""
    identifier = str(request.data.get('identifier') or request.data.get('email') or '').strip()
    password = str(request.data.get('password') or '')
    if not identifier or not password:
        return error_response('Usuario y contraseña son requeridos')

    user = find_user_by_identifier(identifier)
    if user is None or not user.is_active:
        logger.info(f"Login rejected for unknown or inactive identifier '{identifier}'")
        return error_response('Credenciales inválidas', status.HTTP_401_UNAUTHORIZED)

    now = timezone.now()
    if user.lock_until and user.lock_until > now:
        return error_response(
            'Cuenta bloqueada temporalmente. Intente más tarde.',
            status.HTTP_423_LOCKED,
            lockUntil=user.lock_until,
        )

    if not user.check_password(password):
        register_failed_login(user, now)
        create_audit_log(request=request, user=user, action='login_failed', model_name='User',
                         object_id=user.pk, object_name=user.username)
        return error_response('Credenciales inválidas', status.HTTP_401_UNAUTHORIZED)

    User.objects.filter(pk=user.pk).update(failed_login_count=0, lock_until=None, last_login=now)

    if user.is_admin_role and user.mfa_enabled and user.mfa_secret:
        logger.info(f"User {user.username} passed password step, MFA required")
        return ok_response({
            'mfaRequired': True,
            'mfaToken': str(issue_mfa_token(user)),
            'user': UserSerializer(user).data,
        })

    create_audit_log(request=request, user=user, action='login', model_name='User',
                     object_id=user.pk, object_name=user.username)
    logger.info(f"User {user.username} logged in")
    return ok_response(session_payload(user))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def register(request):
    """Create a user with an explicit password (admin only)"""
    nombre = str(request.data.get('nombre') or '').strip()
    email = str(request.data.get('email') or '').strip()
    username = str(request.data.get('username') or '').strip().lower() or email.split('@')[0].lower()
    password = str(request.data.get('password') or '')
    role_name = str(request.data.get('rolNombre') or '').strip().upper()

    if not nombre or not email or not password or not role_name:
        return error_response('Datos incompletos')
    if len(password) < MIN_PASSWORD_LENGTH:
        return error_response('La contraseña debe tener mínimo 8 caracteres.')

    role = Role.objects.filter(name=role_name).first()
    if role is None:
        return error_response('Rol inválido')

    if User.objects.filter(Q(email__iexact=email) | Q(username__iexact=username)).exists():
        return error_response('Usuario o correo ya registrado', status.HTTP_409_CONFLICT)

    user = User(nombre=nombre, email=email, username=username, role=role,
                password_changed_at=timezone.now())
    user.set_password(password)
    user.save()
    create_audit_log(request=request, action='create', model_name='User', object_id=user.pk,
                     object_name=user.username, changes={'role': role.name})
    return ok_response({'user': UserSerializer(user).data}, status_code=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me(request):
    user = get_request_user(request)
    if user is None:
        return error_response('Usuario no encontrado', status.HTTP_404_NOT_FOUND)
    return ok_response({'user': UserSerializer(user).data})


# MFA

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def mfa_setup(request):
    """Start TOTP enrollment; the secret stays pending until confirmed"""
    user = get_request_user(request)
    if user is None:
        return error_response('Usuario no encontrado', status.HTTP_404_NOT_FOUND)

    secret = pyotp.random_base32()
    User.objects.filter(pk=user.pk).update(mfa_temp_secret=secret, mfa_enabled=False, mfa_confirmed_at=None)
    otpauth_url = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=settings.MFA_ISSUER_NAME)
    return ok_response({'otpauth_url': otpauth_url, 'secret': secret})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def mfa_confirm(request):
    user = get_request_user(request)
    if user is None or not user.mfa_temp_secret:
        return error_response('No hay configuración MFA pendiente')

    code = str(request.data.get('code') or '').strip()
    if not pyotp.TOTP(user.mfa_temp_secret).verify(code, valid_window=1):
        return error_response('Código inválido')

    User.objects.filter(pk=user.pk).update(
        mfa_secret=user.mfa_temp_secret,
        mfa_temp_secret=None,
        mfa_enabled=True,
        mfa_confirmed_at=timezone.now(),
    )
    create_audit_log(request=request, action='mfa_change', model_name='User', object_id=user.pk,
                     changes={'mfa_enabled': True})
    return ok_response(message='MFA activado')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def mfa_disable(request):
    user = get_request_user(request)
    if user is None or not user.mfa_enabled or not user.mfa_secret:
        return error_response('MFA no está activo')

    code = str(request.data.get('code') or '').strip()
    if not pyotp.TOTP(user.mfa_secret).verify(code, valid_window=1):
        return error_response('Código inválido')

    User.objects.filter(pk=user.pk).update(mfa_secret=None, mfa_temp_secret=None,
                                           mfa_enabled=False, mfa_confirmed_at=None)
    create_audit_log(request=request, action='mfa_change', model_name='User', object_id=user.pk,
                     changes={'mfa_enabled': False})
    return ok_response(message='MFA desactivado')


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def mfa_verify_login(request):
    """Second login step: exchange an MFA token plus TOTP code for a session"""
    raw_token = str(request.data.get('mfaToken') or '').strip()
    code = str(request.data.get('code') or '').strip()
    if not raw_token or not code:
        return error_response('Datos incompletos')

    try:
        mfa_token = MfaToken(raw_token)
    except TokenError:
        return error_response('No autenticado', status.HTTP_401_UNAUTHORIZED)

    user = (
        User.objects.select_related('role', 'branch')
        .filter(pk=mfa_token.get(settings.SIMPLE_JWT['USER_ID_CLAIM']))
        .first()
    )
    if user is None or not user.is_active or not user.is_admin_role or not user.mfa_enabled or not user.mfa_secret:
        return error_response('No autenticado', status.HTTP_401_UNAUTHORIZED)

    if not pyotp.TOTP(user.mfa_secret).verify(code, valid_window=1):
        return error_response('Código inválido')

    create_audit_log(request=request, user=user, action='login', model_name='User',
                     object_id=user.pk, object_name=user.username, changes={'mfa': True})
    return ok_response(session_payload(user))


# Password recovery

@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([PasswordResetRateThrottle])
def forgot_password(request):
    """
    Always answers with the same generic message so e-mail addresses cannot
    be enumerated. Per-user daily counters limit attempts and e-mails.
    """
    email = str(request.data.get('email') or '').strip()
    if email:
        process_forgot_password(request, email)
    return ok_response(
        message=FORGOT_PASSWORD_MESSAGE,
        cooldownSeconds=int(RESET_COOLDOWN.total_seconds()),
    )


def process_forgot_password(request, email):
    now = timezone.now()
    today = timezone.localdate(now)

    user = User.objects.filter(email__iexact=email, is_active=True).first()
    if user is None:
        return

    if user.reset_day != today:
        keep_lock = user.reset_lock_until if user.reset_lock_until and user.reset_lock_until > now else None
        user.reset_day = today
        user.reset_attempts_today = 0
        user.reset_emails_today = 0
        user.reset_last_sent_at = None
        user.reset_lock_until = keep_lock
        user.save(update_fields=['reset_day', 'reset_attempts_today', 'reset_emails_today',
                                 'reset_last_sent_at', 'reset_lock_until'])

    if user.reset_lock_until and user.reset_lock_until > now:
        return

    User.objects.filter(pk=user.pk).update(reset_attempts_today=F('reset_attempts_today') + 1)
    user.refresh_from_db(fields=['reset_attempts_today'])

    if user.reset_attempts_today >= RESET_MAX_ATTEMPTS_PER_DAY:
        User.objects.filter(pk=user.pk).update(reset_lock_until=now + timedelta(hours=RESET_LOCK_HOURS))
        logger.warning(f"Password reset locked for user {user.pk} after {user.reset_attempts_today} attempts")
        return

    if user.reset_last_sent_at and now - user.reset_last_sent_at < RESET_COOLDOWN:
        return
    if user.reset_emails_today >= RESET_MAX_EMAILS_PER_DAY:
        return

    raw_token, record = issue_reset_token(user, request=request, now=now)
    try:
        send_password_reset_email(user.email, raw_token)
    except Exception as e:
        logger.error(f"Could not send password reset e-mail to user {user.pk}: {e}", exc_info=True)
        PasswordResetToken.objects.filter(pk=record.pk).update(used_at=now)
        return

    User.objects.filter(pk=user.pk).update(
        reset_emails_today=F('reset_emails_today') + 1,
        reset_last_sent_at=now,
    )


@api_view(['GET', 'POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([PasswordResetRateThrottle])
def reset_password_validate(request):
    """Check a reset link; accepts query params or a JSON body"""
    params = request.query_params if request.method == 'GET' else request.data
    email = params.get('email')
    raw_token = params.get('token')
    if not email or not raw_token:
        return error_response('Datos incompletos')

    record, message = find_valid_reset_token(email, raw_token)
    if record is None:
        return ok_response({'valid': False}, message=message)
    return ok_response({'valid': True})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([PasswordResetRateThrottle])
def reset_password(request):
    email = request.data.get('email')
    raw_token = request.data.get('token')
    new_password = str(request.data.get('newPassword') or '')
    if not email or not raw_token or not new_password:
        return error_response('Datos incompletos')
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return error_response('La contraseña debe tener mínimo 8 caracteres.')

    record, message = find_valid_reset_token(email, raw_token)
    if record is None:
        return error_response(message)

    now = timezone.now()
    with transaction.atomic():
        user = record.user
        user.set_password(new_password)
        user.password_changed_at = now
        user.failed_login_count = 0
        user.lock_until = None
        user.save(update_fields=['password', 'password_changed_at', 'failed_login_count', 'lock_until'])
        PasswordResetToken.objects.filter(pk=record.pk).update(used_at=now)

    create_audit_log(request=request, user=record.user, action='password_reset', model_name='User',
                     object_id=record.user_id)
    logger.info(f"Password reset completed for user {record.user_id}")
    return ok_response(message='Contraseña actualizada correctamente.')
