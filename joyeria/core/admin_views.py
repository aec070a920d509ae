"""User administration endpoints (strict authentication, ADMIN only)"""
import logging
import re
import secrets
import unicodedata

from django.db import IntegrityError, transaction
from django.db.models import ProtectedError, Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import IsAuthenticated

from joyeria.locations.models import Branch
from joyeria.locations.serializers import BranchSerializer

from .authentication import StrictJWTAuthentication
from .mailer import send_password_setup_email
from .models import Role, User
from .permissions import IsAdminRole
from .serializers import AdminUserSerializer, RoleSerializer, UserInviteSerializer, UserUpdateSerializer
from .utils import create_audit_log, error_response, ok_response
from .views import issue_reset_token

logger = logging.getLogger('joyeria.admin')

ADMIN_AUTH = [StrictJWTAuthentication]
ADMIN_PERMISSIONS = [IsAuthenticated, IsAdminRole]


def username_from_name(nombre):
    """``'María José López'`` -> ``'maria.jose.lopez'``"""
    ascii_name = unicodedata.normalize('NFD', nombre or '').encode('ascii', 'ignore').decode()
    base = re.sub(r'[^a-z0-9]+', '.', ascii_name.lower()).strip('.')
    return base or 'usuario'


def ensure_unique_username(base):
    candidate = base
    suffix = 1
    while User.objects.filter(username__iexact=candidate).exists():
        suffix += 1
        candidate = f"{base}{suffix}"
    return candidate


def _validation_message(errors):
    for value in errors.values():
        if isinstance(value, (list, tuple)) and value:
            return str(value[0])
        return str(value)
    return 'Datos incompletos'


@api_view(['GET'])
@authentication_classes(ADMIN_AUTH)
@permission_classes(ADMIN_PERMISSIONS)
def role_list(request):
    roles = Role.objects.all()
    return ok_response({'items': RoleSerializer(roles, many=True).data})


@api_view(['GET'])
@authentication_classes(ADMIN_AUTH)
@permission_classes(ADMIN_PERMISSIONS)
def branch_list(request):
    branches = Branch.objects.filter(is_active=True)
    return ok_response({'items': BranchSerializer(branches, many=True).data})


@api_view(['GET'])
@authentication_classes(ADMIN_AUTH)
@permission_classes(ADMIN_PERMISSIONS)
def user_list(request):
    users = User.objects.select_related('role', 'branch').order_by('nombre', 'username')
    return ok_response({'items': AdminUserSerializer(users, many=True).data})


@api_view(['POST'])
@authentication_classes(ADMIN_AUTH)
@permission_classes(ADMIN_PERMISSIONS)
def user_invite(request):
    """
    Create a user. Without a password the account gets an unusable random
    password and a setup link is e-mailed.
    """
    serializer = UserInviteSerializer(data=request.data)
    if not serializer.is_valid():
        return error_response(_validation_message(serializer.errors), errors=serializer.errors)
    data = serializer.validated_data

    role = Role.objects.filter(pk=data['rolId']).first()
    if role is None:
        return error_response('Rol invalido')

    branch = None
    if data.get('sucursalId'):
        branch = Branch.objects.filter(pk=data['sucursalId']).first()
        if branch is None:
            return error_response('Sucursal invalida')

    email = data['email'].strip()
    username = ensure_unique_username(data.get('username') or username_from_name(data['nombre']))
    if User.objects.filter(Q(email__iexact=email) | Q(username__iexact=username)).exists():
        return error_response('Usuario o correo ya registrado', status.HTTP_409_CONFLICT)

    raw_password = data.get('password') or ''
    send_setup = not raw_password

    with transaction.atomic():
        user = User(
            nombre=data['nombre'],
            username=username,
            email=email,
            role=role,
            branch=branch,
            is_active=True,
            password_changed_at=timezone.now() if raw_password else None,
        )
        user.set_password(raw_password or secrets.token_urlsafe(32))
        user.save()

    email_warning = None
    if send_setup:
        raw_token, record = issue_reset_token(user, request=request)
        try:
            send_password_setup_email(email, raw_token)
        except Exception as e:
            logger.error(f"Could not send setup e-mail to {email}: {e}", exc_info=True)
            email_warning = 'No se pudo enviar el correo de configuracion.'

    create_audit_log(request=request, action='create', model_name='User', object_id=user.pk,
                     object_name=user.username, changes={'role': role.name, 'setup_sent': send_setup})
    logger.info(f"User {user.username} invited by {request.user.username}")
    return ok_response(
        {'user': AdminUserSerializer(user).data},
        status_code=status.HTTP_201_CREATED,
        setupSent=send_setup,
        emailWarning=email_warning,
    )


@api_view(['PUT', 'DELETE'])
@authentication_classes(ADMIN_AUTH)
@permission_classes(ADMIN_PERMISSIONS)
def user_detail(request, pk):
    """Update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'DELETE':
        try:
            with transaction.atomic():
                user.delete()
        except (ProtectedError, IntegrityError):
            return error_response(
                'No se pudo eliminar el usuario. Verifique que no tenga movimientos relacionados.',
                status.HTTP_409_CONFLICT,
            )
        create_audit_log(request=request, action='delete', model_name='User', object_id=pk)
        return ok_response()

    serializer = UserUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return error_response(_validation_message(serializer.errors), errors=serializer.errors)
    data = serializer.validated_data

    role = Role.objects.filter(pk=data['rolId']).first()
    if role is None:
        return error_response('Rol invalido')

    email = data['email'].strip()
    if User.objects.filter(email__iexact=email).exclude(pk=user.pk).exists():
        return error_response('Correo ya registrado', status.HTTP_409_CONFLICT)

    branch_id = data.get('sucursalId')
    if branch_id and not Branch.objects.filter(pk=branch_id).exists():
        return error_response('Sucursal invalida')

    user.nombre = data['nombre']
    user.email = email
    user.role = role
    user.branch_id = branch_id or None
    user.save(update_fields=['nombre', 'email', 'role', 'branch', 'updated_at'])
    create_audit_log(request=request, action='update', model_name='User', object_id=user.pk,
                     object_name=user.username, changes={'role': role.name, 'branch_id': user.branch_id})
    return ok_response({'user': AdminUserSerializer(user).data})
