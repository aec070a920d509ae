"""Shared helpers: audit logging, request context, dates and money"""
import logging
import re
from datetime import datetime, time, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.conf import settings
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response

from .models import AuditLog, User

logger = logging.getLogger(__name__)

ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
LOCAL_DATETIME_RE = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2})?$')
CENT = Decimal('0.01')
MAX_ID = 2 ** 63 - 1


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None):
    """
    Create an audit log entry

    Args:
        request: DRF request (for user and IP), optional if user is provided
        action: one of AuditLog.ACTION_CHOICES
        model_name: name of the model being acted upon
        object_id: primary key of the object
        changes: dictionary with the relevant values
        user: optional user override, defaults to request.user
        object_name: human-readable name of the object
    """
    audit_user = user
    if audit_user is None and request is not None:
        audit_user = getattr(request, 'user', None)
    user_id = None
    if audit_user is not None and getattr(audit_user, 'is_authenticated', False):
        user_id = audit_user.id

    if not action or not model_name or object_id is None:
        logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
        return None

    return AuditLog.objects.create(
        user_id=user_id,
        action=action,
        model_name=model_name,
        object_id=str(object_id),
        object_name=object_name,
        changes=changes or {},
        ip_address=get_client_ip(request) if request else None,
    )


def ok_response(data=None, message=None, status_code=status.HTTP_200_OK, **extra):
    """Build the standard ``{ok, data, message}`` success envelope"""
    body = {'ok': True}
    if data is not None:
        body['data'] = data
    if message:
        body['message'] = message
    body.update(extra)
    return Response(body, status=status_code)


def error_response(message, status_code=status.HTTP_400_BAD_REQUEST, **extra):
    body = {'ok': False, 'message': message}
    body.update(extra)
    return Response(body, status=status_code)


# Request context

def normalize_role(value):
    return str(value or '').strip().upper()


def get_request_role(request):
    """Role name from the token claim, falling back to the user row"""
    token = getattr(request, 'auth', None)
    if token is not None and hasattr(token, 'get'):
        role = token.get('role')
        if role:
            return normalize_role(role)
    user = getattr(request, 'user', None)
    if isinstance(user, User):
        return normalize_role(user.role_name)
    return ''


def is_admin_request(request):
    return get_request_role(request) == 'ADMIN'


def get_request_user(request):
    """Load the User row behind a (possibly stateless) authenticated request"""
    user = getattr(request, 'user', None)
    if isinstance(user, User):
        return user
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return User.objects.select_related('role', 'branch').filter(pk=user.id).first()


def resolve_branch_for_user(user):
    """
    Branch used for a user's operations: their own branch when assigned,
    otherwise the fallback branch (code ``SP``).
    """
    from joyeria.locations.models import Branch

    if user is not None and user.branch_id:
        branch = Branch.objects.filter(pk=user.branch_id).first()
        if branch:
            return branch
    return Branch.objects.filter(code=settings.FALLBACK_BRANCH_CODE).first()


# Dates

def parse_iso_date(value):
    """Strict ``YYYY-MM-DD`` parsing; returns ``None`` when invalid"""
    if not isinstance(value, str) or not ISO_DATE_RE.match(value.strip()):
        return None
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def start_of_local_day(day):
    return timezone.make_aware(datetime.combine(day, time.min))


def local_day_bounds(day=None):
    """[start, end) of a local calendar day"""
    if day is None:
        day = timezone.localdate()
    start = start_of_local_day(day)
    return start, start_of_local_day(day + timedelta(days=1))


def local_month_bounds(day):
    first = day.replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return start_of_local_day(first), start_of_local_day(next_first)


def parse_datetime_input(value):
    """
    Accept ``YYYY-MM-DD`` (local midnight), ``YYYY-MM-DDTHH:MM[:SS]`` (local
    time) or a full ISO-8601 timestamp with offset.
    """
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    day = parse_iso_date(value)
    if day is not None:
        return start_of_local_day(day)
    if LOCAL_DATETIME_RE.match(value):
        return timezone.make_aware(datetime.fromisoformat(value))
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


# Money and numbers

def to_decimal(value, default=None):
    """Parse a number from JSON input; ``default`` when missing or invalid"""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def money(value):
    """Round to cents, half-up"""
    if value is None:
        value = 0
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def money_float(value):
    return float(money(value))


# Ids

def to_id(value):
    """Positive integer id from a JSON body or query string; ``None`` when invalid"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = int(value) if value.is_integer() else None
    elif not isinstance(value, int):
        value = str(value).strip()
        value = int(value) if value.isdecimal() else None
    if value is None or not 0 < value <= MAX_ID:
        return None
    return value


def is_id(value):
    return to_id(value) is not None


def id_param(params, name):
    """``(value, ok)`` for an optional numeric id param"""
    value = params.get(name)
    if value in (None, ''):
        return None, True
    value = to_id(value)
    return value, value is not None
