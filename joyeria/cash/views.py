import logging
from datetime import datetime

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from joyeria.core.permissions import IsAdminOrCashier, IsAdminRole
from joyeria.core.utils import (
    create_audit_log, error_response, get_request_user, id_param, local_day_bounds, money, ok_response,
    parse_datetime_input, parse_iso_date, resolve_branch_for_user, to_decimal,
)
from joyeria.locations.models import Branch

from .models import CashClosure
from .serializers import CashClosureSerializer
from .services import payment_totals, totals_as_float

logger = logging.getLogger('joyeria.cash')

HISTORY_LIMIT = 100
NO_BRANCH_MESSAGE = 'No se encontró una sucursal válida (asigna sucursal al usuario o crea SP).'


def resolve_range(params):
    """
    ``(start, end, end_inclusive)`` from ``from``/``to``; today unless both
    are given. A bare ``to`` date covers that whole day. Returns ``None``
    when invalid.
    """
    raw_from, raw_to = params.get('from'), params.get('to')
    if not raw_from or not raw_to:
        start, end = local_day_bounds()
        return start, end, False
    start = parse_datetime_input(str(raw_from))
    to_day = parse_iso_date(str(raw_to))
    if to_day is not None:
        end, end_inclusive = local_day_bounds(to_day)[1], False
    else:
        end, end_inclusive = parse_datetime_input(str(raw_to)), True
    if start is None or end is None:
        return None
    return start, end, end_inclusive


def resolve_cash_branch(params):
    """``(branch, error_message)`` for the optional ``sucursalId`` param"""
    branch_id, ok = id_param(params, 'sucursalId')
    if not ok:
        return None, 'sucursalId inválido'
    if branch_id:
        branch = Branch.objects.filter(pk=branch_id).first()
    else:
        branch = resolve_branch_for_user(None)
    if branch is None:
        return None, 'No se encontró la sucursal principal (codigo = SP)'
    return branch, None


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


# Cash summaries and closures
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def cash_summary(request):
    """Payment totals per method for a range (today by default)"""
    date_range = resolve_range(request.query_params)
    if date_range is None:
        return error_response('Parámetros "from" o "to" inválidos')
    branch, message = resolve_cash_branch(request.query_params)
    if branch is None:
        return error_response(message)

    start, end, end_inclusive = date_range
    totals = payment_totals(start, end, branch_id=branch.pk, end_inclusive=end_inclusive)
    return ok_response({
        'sucursalId': branch.pk,
        'rango': {'from': _iso(start), 'to': _iso(end)},
        'totales': totals_as_float(totals),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def cash_close(request):
    """Write a closure row over a range (today by default)"""
    date_range = resolve_range(request.data)
    if date_range is None:
        return error_response('Parámetros "from" o "to" inválidos')
    branch, message = resolve_cash_branch(request.data)
    if branch is None:
        return error_response(message)

    start, end, end_inclusive = date_range
    totals = payment_totals(start, end, branch_id=branch.pk, end_inclusive=end_inclusive)
    user = get_request_user(request)
    closure = CashClosure.objects.create(
        branch=branch,
        user=user,
        period_start=start,
        period_end=end,
        total_cash=totals['efectivo'],
        total_transfer=totals['transferencia'],
        total_card=totals['tarjeta'],
        total_general=totals['general'],
        closed_at=timezone.now(),
        notes=request.data.get('notas') or '',
    )
    create_audit_log(request=request, action='cash_close', model_name='CashClosure', object_id=closure.pk,
                     changes={'general': str(totals['general'])})
    return ok_response(
        {'cierre': CashClosureSerializer(closure).data, 'totales': totals_as_float(totals)},
        message='Cierre de caja registrado correctamente',
        status_code=status.HTTP_201_CREATED,
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def cash_closures(request):
    """Latest closures, newest first"""
    try:
        limit = int(request.query_params.get('limit', 30))
    except (TypeError, ValueError):
        limit = 30
    limit = min(max(limit, 1), 500)
    closures = CashClosure.objects.select_related('branch', 'user').order_by('-created_at')
    branch_id, ok = id_param(request.query_params, 'sucursalId')
    if not ok:
        return error_response('sucursalId inválido')
    if branch_id:
        closures = closures.filter(branch_id=branch_id)
    return ok_response({'items': CashClosureSerializer(closures[:limit], many=True).data})


# POS cash register
def _open_register(user, branch):
    return (CashClosure.objects.filter(user=user, branch=branch, closed_at__isnull=True)
            .order_by('-period_start').first())


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def register_today(request):
    """State of the caller's register: ABIERTA, CERRADA or SIN_APERTURA"""
    user = get_request_user(request)
    branch = resolve_branch_for_user(user)
    if branch is None:
        return error_response(NO_BRANCH_MESSAGE)

    open_register = _open_register(user, branch)
    if open_register is not None:
        return ok_response({'estado': 'ABIERTA', 'cierreActual': CashClosureSerializer(open_register).data})

    start, end = local_day_bounds()
    closure = (CashClosure.objects.filter(user=user, branch=branch, period_start__gte=start, period_start__lt=end)
               .order_by('-period_start').first())
    if closure is None:
        return ok_response({'estado': 'SIN_APERTURA', 'cierreActual': None})
    state = 'CERRADA' if closure.period_end else 'ABIERTA'
    return ok_response({'estado': state, 'cierreActual': CashClosureSerializer(closure).data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def register_open(request):
    user = get_request_user(request)
    branch = resolve_branch_for_user(user)
    if branch is None:
        return error_response(NO_BRANCH_MESSAGE)

    open_register = _open_register(user, branch)
    if open_register is not None:
        return error_response(
            'Ya tienes una caja abierta en esta sucursal. Primero ciérrala para abrir otra.',
            status.HTTP_409_CONFLICT,
            code='CAJA_YA_ABIERTA',
            data={'cierre': CashClosureSerializer(open_register).data},
        )

    raw_amount = request.data.get('monto_apertura', request.data.get('montoApertura', 0))
    opening = to_decimal(raw_amount, None if raw_amount not in (None, '') else 0)
    if opening is None or opening < 0:
        return error_response('monto_apertura inválido (debe ser un número >= 0).')

    try:
        with transaction.atomic():
            closure = CashClosure.objects.create(
                branch=branch,
                user=user,
                period_start=timezone.now(),
                opening_amount=money(opening),
            )
    except IntegrityError:
        return error_response('Ya existe una caja abierta para este usuario en esta sucursal.',
                              status.HTTP_409_CONFLICT, code='CAJA_YA_ABIERTA')

    create_audit_log(request=request, action='cash_open', model_name='CashClosure', object_id=closure.pk,
                     changes={'monto_apertura': str(closure.opening_amount)})
    logger.info(f"Cash register {closure.pk} opened by user {user.pk} in branch {branch.code}")
    return ok_response({'cierre': CashClosureSerializer(closure).data},
                       message='Caja abierta correctamente.', status_code=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def register_close(request):
    """
    Close the caller's open register. Totals cover the caller's confirmed
    sales since opening; ``diferencia`` compares the reported cash against
    opening amount plus cash sales.
    """
    user = get_request_user(request)
    branch = resolve_branch_for_user(user)
    if branch is None:
        return error_response(NO_BRANCH_MESSAGE)

    raw_reported = request.data.get('monto_cierre_reportado', request.data.get('montoCierreReportado'))
    reported = None
    if raw_reported not in (None, ''):
        reported = to_decimal(raw_reported)
        if reported is None or reported < 0:
            return error_response('monto_cierre_reportado inválido (debe ser un número >= 0 o null).')
        reported = money(reported)

    with transaction.atomic():
        closure = (CashClosure.objects.select_for_update()
                   .filter(user=user, branch=branch, closed_at__isnull=True)
                   .order_by('-period_start').first())
        if closure is None:
            return error_response('No hay caja abierta para cerrar.')

        now = timezone.now()
        totals = payment_totals(closure.period_start, now, branch_id=branch.pk, user_id=user.pk,
                                end_inclusive=True)
        closure.period_end = now
        closure.closed_at = now
        closure.total_cash = totals['efectivo']
        closure.total_transfer = totals['transferencia']
        closure.total_card = totals['tarjeta']
        closure.total_general = totals['general']
        closure.reported_closing_amount = reported
        if reported is not None:
            closure.difference = money(reported - (closure.opening_amount + totals['efectivo']))
        closure.save()

    create_audit_log(request=request, action='cash_close', model_name='CashClosure', object_id=closure.pk,
                     changes={'general': str(closure.total_general),
                              'diferencia': str(closure.difference) if closure.difference is not None else None})
    logger.info(f"Cash register {closure.pk} closed by user {user.pk}")
    return ok_response({'cierre': CashClosureSerializer(closure).data}, message='Caja cerrada correctamente.')


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def register_history(request):
    """Register periods, newest first, never more than 100 rows"""
    closures = CashClosure.objects.select_related('user', 'branch')
    raw_from = request.query_params.get('from')
    raw_to = request.query_params.get('to')
    if raw_from:
        start = parse_datetime_input(raw_from)
        if start is None:
            return error_response('Parámetro "from" inválido')
        closures = closures.filter(period_start__gte=start)
    if raw_to:
        end = parse_datetime_input(raw_to)
        if end is None:
            return error_response('Parámetro "to" inválido')
        closures = closures.filter(period_start__lt=end)
    user_id, ok = id_param(request.query_params, 'userId')
    if not ok:
        return error_response('userId inválido')
    if user_id:
        closures = closures.filter(user_id=user_id)

    closures = closures.order_by('-period_start')[:HISTORY_LIMIT]
    return ok_response({'items': CashClosureSerializer(closures, many=True).data})
