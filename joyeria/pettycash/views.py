"""
Petty cash (caja chica): money delivered to cashiers and the change they
hand out. Non-admin callers only ever see their own records in their own
branch.
"""
import logging
from datetime import timedelta

from django.db.models import Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, renderer_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.renderers import JSONRenderer

from joyeria.core.models import User
from joyeria.core.permissions import IsAdminOrCashier
from joyeria.core.utils import (
    create_audit_log, error_response, get_request_user, is_admin_request, is_id, local_day_bounds,
    local_month_bounds, money, money_float, ok_response, parse_datetime_input, parse_iso_date,
    resolve_branch_for_user, start_of_local_day, to_decimal,
)
from joyeria.locations.models import Branch
from joyeria.reports.excel import XlsxRenderer, add_sheet, new_workbook, workbook_response

from .models import PettyCashDelivery, PettyCashExchange
from .serializers import PettyCashDeliverySerializer, PettyCashExchangeSerializer

logger = logging.getLogger('joyeria.pettycash')

NO_BRANCH_MESSAGE = 'sucursal_id es requerido (asigna sucursal al usuario o crea SP).'
USER_NOT_FOUND_MESSAGE = 'Usuario no encontrado'


def _filtered(model, request):
    """
    Queryset filtered by ``from``/``to`` (inclusive days), ``cajera_id`` and
    ``sucursal_id``. Returns ``(queryset, error_message)``.
    """
    params = request.query_params
    raw_from, raw_to = params.get('from'), params.get('to')
    cashier_id, branch_id = params.get('cajera_id'), params.get('sucursal_id')

    start = parse_iso_date(raw_from) if raw_from else None
    if raw_from and start is None:
        return None, 'from invalido'
    end = parse_iso_date(raw_to) if raw_to else None
    if raw_to and end is None:
        return None, 'to invalido'
    if cashier_id and not is_id(cashier_id):
        return None, 'cajera_id invalido'
    if branch_id and not is_id(branch_id):
        return None, 'sucursal_id invalido'

    if not is_admin_request(request):
        user = get_request_user(request)
        if user is None:
            return model.objects.none(), None
        branch = resolve_branch_for_user(user)
        cashier_id = user.pk
        branch_id = branch.pk if branch else None

    entries = model.objects.select_related('cashier', 'authorized_by', 'branch')
    if cashier_id:
        entries = entries.filter(cashier_id=cashier_id)
    if branch_id:
        entries = entries.filter(branch_id=branch_id)
    if start:
        entries = entries.filter(date__gte=start_of_local_day(start))
    if end:
        entries = entries.filter(date__lt=start_of_local_day(end + timedelta(days=1)))
    return entries, None


def _total(entries):
    return money(entries.aggregate(total=Sum('amount'))['total'])


def _latest(entries):
    entry = entries.order_by('-date').first()
    if entry is None:
        return None
    return {'fecha': entry.date, 'monto': money_float(entry.amount)}


def _parse_entry_date(raw):
    """``None`` when absent, ``False`` when invalid"""
    if not raw:
        return None
    value = str(raw).strip()
    if parse_iso_date(value) is None and 'T' not in value:
        return False
    parsed = parse_datetime_input(value)
    return parsed if parsed is not None else False


# Deliveries (entregas)
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def delivery_list_create(request):
    """List deliveries; ADMIN registers new ones"""
    if request.method == 'GET':
        entries, message = _filtered(PettyCashDelivery, request)
        if entries is None:
            return error_response(message)
        return ok_response({'items': PettyCashDeliverySerializer(entries.order_by('-date'), many=True).data})

    if not is_admin_request(request):
        return error_response('Sin permisos', status.HTTP_403_FORBIDDEN)

    data = request.data
    if not data.get('sucursal_id') or not is_id(data['sucursal_id']):
        return error_response('sucursal_id invalido')
    if not data.get('cajera_id') or not is_id(data['cajera_id']):
        return error_response('cajera_id invalido')
    amount = to_decimal(data.get('monto'))
    if amount is None or amount <= 0:
        return error_response('monto invalido')
    entry_date = _parse_entry_date(data.get('fecha'))
    if entry_date is False:
        return error_response('fecha invalida')

    branch = get_object_or_404(Branch, pk=data['sucursal_id'])
    cashier = get_object_or_404(User, pk=data['cajera_id'])
    delivery = PettyCashDelivery(
        branch=branch,
        cashier=cashier,
        authorized_by=get_request_user(request),
        amount=money(amount),
        reason=str(data['motivo']) if data.get('motivo') else None,
    )
    if entry_date:
        delivery.date = entry_date
    delivery.save()

    create_audit_log(request=request, action='petty_cash_delivery', model_name='PettyCashDelivery',
                     object_id=delivery.pk, changes={'monto': str(delivery.amount), 'cajera': cashier.pk})
    logger.info(f"Petty cash delivery {delivery.pk}: {delivery.amount} to user {cashier.pk}")
    return ok_response(PettyCashDeliverySerializer(delivery).data, status_code=status.HTTP_201_CREATED)


# Exchanges (cambios)
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def exchange_list_create(request):
    """
    List exchanges, or record one for the caller. ADMIN may record it for
    another cashier with ``cajera_id``.
    """
    if request.method == 'GET':
        entries, message = _filtered(PettyCashExchange, request)
        if entries is None:
            return error_response(message)
        return ok_response({'items': PettyCashExchangeSerializer(entries.order_by('-date'), many=True).data})

    data = request.data
    user = get_request_user(request)
    amount = to_decimal(data.get('monto'))
    if amount is None or amount <= 0:
        return error_response('monto invalido')
    entry_date = _parse_entry_date(data.get('fecha'))
    if entry_date is False:
        return error_response('fecha invalida')

    cashier = user
    if is_admin_request(request) and data.get('cajera_id'):
        if not is_id(data['cajera_id']):
            return error_response('cajera_id invalido')
        cashier = get_object_or_404(User, pk=data['cajera_id'])
    if cashier is None:
        return error_response(USER_NOT_FOUND_MESSAGE, status.HTTP_404_NOT_FOUND)

    if is_admin_request(request) and data.get('sucursal_id'):
        if not is_id(data['sucursal_id']):
            return error_response('sucursal_id invalido')
        branch = get_object_or_404(Branch, pk=data['sucursal_id'])
    else:
        branch = resolve_branch_for_user(cashier)
    if branch is None:
        return error_response(NO_BRANCH_MESSAGE)

    exchange = PettyCashExchange(
        branch=branch,
        cashier=cashier,
        authorized_by=user,
        amount=money(amount),
        reason=str(data['motivo']) if data.get('motivo') else None,
    )
    if entry_date:
        exchange.date = entry_date
    exchange.save()

    create_audit_log(request=request, action='petty_cash_exchange', model_name='PettyCashExchange',
                     object_id=exchange.pk, changes={'monto': str(exchange.amount), 'cajera': cashier.pk})
    return ok_response(PettyCashExchangeSerializer(exchange).data, status_code=status.HTTP_201_CREATED)


# Balances
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def petty_cash_summary(request):
    """Day and month totals; ADMIN sees every cashier"""
    raw_day = request.query_params.get('date')
    day = parse_iso_date(raw_day) if raw_day else timezone.localdate()
    if day is None:
        return error_response('date invalido')

    scope = {}
    if not is_admin_request(request):
        user = get_request_user(request)
        if user is None:
            return error_response(USER_NOT_FOUND_MESSAGE, status.HTTP_404_NOT_FOUND)
        branch = resolve_branch_for_user(user)
        scope = {'cashier_id': user.pk, 'branch_id': branch.pk if branch else None}

    day_start, day_end = local_day_bounds(day)
    month_start, month_end = local_month_bounds(day)
    deliveries = PettyCashDelivery.objects.filter(**scope)
    exchanges = PettyCashExchange.objects.filter(**scope)

    delivered_month = _total(deliveries.filter(date__gte=month_start, date__lt=month_end))
    exchanged_month = _total(exchanges.filter(date__gte=month_start, date__lt=month_end))
    return ok_response({
        'totalEntregadoHoy': money_float(_total(deliveries.filter(date__gte=day_start, date__lt=day_end))),
        'totalCambiosHoy': money_float(_total(exchanges.filter(date__gte=day_start, date__lt=day_end))),
        'totalEntregadoMes': money_float(delivered_month),
        'totalCambiosMes': money_float(exchanged_month),
        'saldoMes': money_float(delivered_month - exchanged_month),
        'ultimaEntrega': _latest(deliveries),
        'ultimoCambio': _latest(exchanges),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def petty_cash_balance(request):
    """Today's balance for the caller in their branch"""
    user = get_request_user(request)
    if user is None:
        return error_response(USER_NOT_FOUND_MESSAGE, status.HTTP_404_NOT_FOUND)
    branch = resolve_branch_for_user(user)
    if branch is None:
        return error_response(NO_BRANCH_MESSAGE)

    start, end = local_day_bounds()
    deliveries = PettyCashDelivery.objects.filter(cashier=user, branch=branch)
    exchanges = PettyCashExchange.objects.filter(cashier=user, branch=branch)
    delivered = _total(deliveries.filter(date__gte=start, date__lt=end))
    exchanged = _total(exchanges.filter(date__gte=start, date__lt=end))
    return ok_response({
        'totalEntregadoHoy': money_float(delivered),
        'totalCambiosHoy': money_float(exchanged),
        'saldoHoy': money_float(delivered - exchanged),
        'ultimaEntrega': _latest(deliveries),
        'ultimoCambio': _latest(exchanges),
    })


# Export
def _export_row(entry):
    return {
        'fecha': timezone.localtime(entry.date).strftime('%Y-%m-%d %H:%M:%S'),
        'cajera': entry.cashier.display_name(),
        'sucursal': entry.branch.name,
        'monto': entry.amount,
        'motivo': entry.reason or '',
        'autorizo': entry.authorized_by.display_name() if entry.authorized_by_id else '',
    }


ENTRY_COLUMNS = [
    ('Fecha', 'fecha'),
    ('Cajera', 'cajera'),
    ('Sucursal', 'sucursal'),
    ('Monto (Q)', 'monto'),
    ('Motivo/Nota', 'motivo'),
    ('Autorizo', 'autorizo'),
]


@api_view(['GET'])
@renderer_classes([JSONRenderer, XlsxRenderer])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def petty_cash_export(request):
    """Workbook with Resumen, Entregas and Cambios sheets"""
    deliveries, message = _filtered(PettyCashDelivery, request)
    if deliveries is None:
        return error_response(message)
    exchanges, _ = _filtered(PettyCashExchange, request)
    deliveries = list(deliveries.order_by('date'))
    exchanges = list(exchanges.order_by('date'))

    delivered = money(sum(e.amount for e in deliveries))
    exchanged = money(sum(e.amount for e in exchanges))
    raw_from = request.query_params.get('from') or ''
    raw_to = request.query_params.get('to') or ''

    workbook = new_workbook()
    add_sheet(
        workbook, 'Resumen',
        [('Desde', 'desde'), ('Hasta', 'hasta'), ('Total entregas (Q)', 'entregas'),
         ('Total cambios (Q)', 'cambios'), ('Saldo (Q)', 'saldo')],
        [{'desde': raw_from, 'hasta': raw_to, 'entregas': delivered, 'cambios': exchanged,
          'saldo': delivered - exchanged}],
        money_keys=('entregas', 'cambios', 'saldo'),
    )
    add_sheet(workbook, 'Entregas', ENTRY_COLUMNS, [_export_row(e) for e in deliveries], money_keys=('monto',))
    add_sheet(workbook, 'Cambios', ENTRY_COLUMNS, [_export_row(e) for e in exchanges], money_keys=('monto',))
    return workbook_response(workbook, f"caja-chica_{raw_from or 'todo'}_a_{raw_to or 'todo'}.xlsx")
