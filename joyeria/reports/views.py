import logging

from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes, renderer_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.renderers import JSONRenderer

from joyeria.core.permissions import IsAdminOrCashier, IsAdminRole
from joyeria.core.utils import (
    error_response, get_request_user, id_param, is_admin_request, local_day_bounds, money_float, ok_response,
    parse_iso_date, resolve_branch_for_user, start_of_local_day,
)
from joyeria.locations.models import Branch
from joyeria.sales.models import SalePayment
from joyeria.sales.services import SCOPE_BRANCH, SCOPE_USER, build_summary

from .excel import XlsxRenderer, add_sheet, new_workbook, workbook_response
from .services import (
    cached_low_stock, cost_of_sales, internal_inventory_rows, last_sales, sales_by_method, sales_report,
    top_products,
)

logger = logging.getLogger('joyeria.reports')

VALID_METHODS = (SalePayment.CASH, SalePayment.TRANSFER, SalePayment.CARD)
NO_BRANCH_MESSAGE = 'sucursal_id es requerido (asigna sucursal al usuario o crea SP).'


# Excel exports
@api_view(['GET'])
@renderer_classes([JSONRenderer, XlsxRenderer])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def sales_export(request):
    """
    Sales workbook for [from, to). Cashiers only ever export their own
    sales; ADMIN may filter by ``sucursal_id`` and ``usuario_id``.
    """
    params = request.query_params
    start_day, end_day = parse_iso_date(params.get('from')), parse_iso_date(params.get('to'))
    if start_day is None or end_day is None:
        return error_response('Parámetros inválidos: from/to deben ser YYYY-MM-DD')

    method = params.get('metodo') or None
    if method and method not in VALID_METHODS:
        return error_response('Método inválido. Use EFECTIVO | TRANSFERENCIA | TARJETA')
    branch_id, ok = id_param(params, 'sucursal_id')
    if not ok:
        return error_response('sucursal_id inválido')
    user_id, ok = id_param(params, 'usuario_id')
    if not ok:
        return error_response('usuario_id inválido')
    if not is_admin_request(request):
        user_id = request.user.id

    report = sales_report(start_of_local_day(start_day), start_of_local_day(end_day),
                          method=method, branch_id=branch_id, user_id=user_id)
    summary = report['summary']
    method_tag = method or 'TODAS'

    workbook = new_workbook()
    summary_sheet = add_sheet(
        workbook, 'Resumen',
        [('Desde', 'desde'), ('Hasta (exclusivo)', 'hasta'), ('Método filtro', 'metodo'), ('Ventas', 'ventas'),
         ('Total ventas (Q)', 'total'), ('Total pagos (Q)', 'pagos'), ('Total items (Q)', 'items'),
         ('Dif ventas-pagos (Q)', 'dif_pagos'), ('Dif ventas-items (Q)', 'dif_items')],
        [dict(summary, desde=start_day.isoformat(), hasta=end_day.isoformat(), metodo=method_tag)],
        money_keys=('total', 'pagos', 'items', 'dif_pagos', 'dif_items'),
    )
    summary_sheet.append([])
    summary_sheet.append(['Totales por método (según pagos)'])
    for row in report['by_method']:
        summary_sheet.append([None, None, row['metodo'], None, None, float(row['monto'])])
        summary_sheet.cell(row=summary_sheet.max_row, column=6).number_format = '#,##0.00'

    add_sheet(
        workbook, 'Ventas',
        [('Fecha', 'fecha'), ('ID Venta', 'id'), ('Cliente (ticket)', 'cliente'),
         ('Método(s) de pago', 'metodos'), ('Total venta (Q)', 'total'), ('Total pagos (Q)', 'pagos'),
         ('Total items (Q)', 'items'), ('Dif venta-pagos (Q)', 'dif_pagos'), ('Dif venta-items (Q)', 'dif_items')],
        report['sales'],
        money_keys=('total', 'pagos', 'items', 'dif_pagos', 'dif_items'),
    )
    add_sheet(
        workbook, 'Detalle',
        [('Fecha', 'fecha'), ('ID Venta', 'venta_id'), ('Cliente (ticket)', 'cliente'), ('Método(s)', 'metodos'),
         ('SKU', 'sku'), ('Producto', 'producto'), ('Cantidad', 'cantidad'), ('Precio unit (Q)', 'precio_unitario'),
         ('Descuento (Q)', 'descuento'), ('Impuesto (Q)', 'impuesto'), ('Total línea (Q)', 'total_linea'),
         ('Total venta (Q)', 'total_venta')],
        report['details'],
        money_keys=('precio_unitario', 'descuento', 'impuesto', 'total_linea', 'total_venta'),
    )
    logger.info(f"Sales export {start_day}..{end_day} ({method_tag}): {summary['ventas']} sales")
    return workbook_response(workbook, f'reporte-ventas_{start_day}_a_{end_day}_{method_tag}.xlsx')


@api_view(['GET'])
@renderer_classes([JSONRenderer, XlsxRenderer])
@permission_classes([IsAuthenticated, IsAdminRole])
def internal_inventory_export(request):
    """Stock valuation workbook: Resumen and Inventario sheets"""
    branch_id, ok = id_param(request.query_params, 'sucursal_id')
    if not ok:
        return error_response('sucursal_id inválido')

    rows = internal_inventory_rows(branch_id)
    products = {row['sku'] for row in rows}
    workbook = new_workbook()
    add_sheet(
        workbook, 'Resumen',
        [('Fecha', 'fecha'), ('Productos', 'productos'), ('Stock total', 'stock'),
         ('Valor venta (Q)', 'venta'), ('Valor costo (Q)', 'costo')],
        [{
            'fecha': timezone.localdate().isoformat(),
            'productos': len(products),
            'stock': sum(row['stock'] for row in rows),
            'venta': sum(row['valor_venta'] for row in rows),
            'costo': sum(row['valor_costo'] for row in rows),
        }],
        money_keys=('venta', 'costo'),
    )
    add_sheet(
        workbook, 'Inventario',
        [('SKU', 'sku'), ('Producto', 'producto'), ('Categoria', 'categoria'), ('Sucursal', 'sucursal'),
         ('Ubicación', 'ubicacion'), ('Stock', 'stock'), ('Estado', 'estado'),
         ('Precio venta (Q)', 'precio_venta'), ('Costo promedio (Q)', 'costo_promedio'),
         ('Costo ultimo (Q)', 'costo_ultimo'), ('Valor venta (Q)', 'valor_venta'),
         ('Valor costo (Q)', 'valor_costo'), ('IVA %', 'iva'), ('Ultimo restock', 'ultimo_restock')],
        rows,
        money_keys=('precio_venta', 'costo_promedio', 'costo_ultimo', 'valor_venta', 'valor_costo'),
    )
    return workbook_response(workbook, f'reporte-inventario-interno_{timezone.localdate().isoformat()}.xlsx')


# JSON reports
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def report_sales_by_method(request):
    """Daily totals per payment method between ``desde`` and ``hasta`` (inclusive days)"""
    raw_from, raw_to = request.query_params.get('desde'), request.query_params.get('hasta')
    start_day = parse_iso_date(raw_from) if raw_from else None
    end_day = parse_iso_date(raw_to) if raw_to else None
    if (raw_from and start_day is None) or (raw_to and end_day is None):
        return error_response('Parámetros desde/hasta deben ser YYYY-MM-DD')

    start = start_of_local_day(start_day) if start_day else None
    end = local_day_bounds(end_day)[1] if end_day else None
    return ok_response(datos=sales_by_method(start, end))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def report_top_products(request):
    branch_id, ok = id_param(request.query_params, 'sucursal_id')
    if not ok:
        return error_response('sucursal_id inválido')
    return ok_response(productos=top_products(branch_id=branch_id))


# Dashboard
def _dashboard_scope(request):
    """
    ``(scope, branch, user, error_message)``; ``branch`` is ``None`` when
    unresolved.
    """
    admin = is_admin_request(request)
    scope = str(request.query_params.get('scope') or '').strip().upper()
    if scope not in (SCOPE_USER, SCOPE_BRANCH):
        scope = SCOPE_BRANCH if admin else SCOPE_USER
    user = get_request_user(request)
    branch_id = None
    if admin:
        branch_id, ok = id_param(request.query_params, 'sucursal_id')
        if not ok:
            return scope, None, user, 'sucursal_id inválido'
    branch = Branch.objects.filter(pk=branch_id).first() if branch_id else resolve_branch_for_user(user)
    if branch is None:
        return scope, None, user, NO_BRANCH_MESSAGE
    return scope, branch, user, None


def _dashboard_summary_data(request):
    """``(summary, scope, branch, user, error_message)``"""
    scope, branch, user, message = _dashboard_scope(request)
    if branch is None:
        return None, scope, branch, user, message
    raw_day = request.query_params.get('date')
    day = parse_iso_date(raw_day) if raw_day else None
    if raw_day and day is None:
        return None, scope, branch, user, 'Parámetro "date" inválido (YYYY-MM-DD)'
    day_iso = (day or timezone.localdate()).isoformat()
    return build_summary(day_iso, scope, branch.pk, user.pk), scope, branch, user, None


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def dashboard_summary(request):
    """Day KPIs: sales, tickets, average ticket, gross profit and totals per method"""
    data, scope, branch, user, message = _dashboard_summary_data(request)
    if data is None:
        return error_response(message)

    totals = data['totals']
    total_sales = totals['total_general']
    tickets = totals['num_ventas']
    cost = cost_of_sales(data['range']['start'], data['range']['end'], branch.pk,
                         user.pk if scope == SCOPE_USER else None)
    return ok_response({
        'totalVentasDia': total_sales,
        'totalTicketsDia': tickets,
        'ticketPromedio': round(total_sales / tickets, 2) if tickets else 0,
        'utilidadBrutaDia': round(total_sales - money_float(cost), 2),
        'porMetodo': [
            {'metodo': SalePayment.CASH, 'monto': totals['efectivo']},
            {'metodo': SalePayment.TRANSFER, 'monto': totals['transferencia']},
            {'metodo': SalePayment.CARD, 'monto': totals['tarjeta']},
        ],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def dashboard_top_products(request):
    data, _, _, _, message = _dashboard_summary_data(request)
    if data is None:
        return error_response(message)
    items = [
        {'id': p['producto_id'], 'sku': p['sku'], 'nombre': p['nombre'],
         'unidades': p['qty'], 'facturacion': p['total']}
        for p in data['top_productos']
    ]
    return ok_response(items=items)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def dashboard_low_stock(request):
    branch_id, ok = id_param(request.query_params, 'sucursal_id')
    if not ok:
        return error_response('sucursal_id inválido')
    return ok_response(items=cached_low_stock(branch_id))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def dashboard_last_sales(request):
    """The 10 most recent confirmed sales for the caller or their branch"""
    scope, branch, user, message = _dashboard_scope(request)
    if branch is None:
        return error_response(message)
    return ok_response(items=last_sales(branch.pk, user.pk if scope == SCOPE_USER else None))
