import json
import logging

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.http import StreamingHttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes, renderer_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.renderers import JSONRenderer

from joyeria.catalog.models import Product
from joyeria.catalog.serializers import ProductSerializer
from joyeria.core.authentication import QueryParamJWTAuthentication
from joyeria.core.cache_signals import suspend_cache_signals
from joyeria.core.cache_utils import invalidate_sales_cache, invalidate_stock_cache
from joyeria.core.permissions import IsAdminOrCashier
from joyeria.core.utils import (
    create_audit_log, error_response, get_request_user, id_param, is_admin_request, is_id, money_float,
    ok_response, parse_iso_date, resolve_branch_for_user,
)
from joyeria.locations.models import Branch

from .importers import import_price_list
from .renderers import EventStreamRenderer
from .services import (
    SCOPE_BRANCH, SCOPE_USER, build_summary, bulk_update_products, register_pos_sale, register_sale,
    remove_manual_product, save_manual_product,
)

logger = logging.getLogger('joyeria.sales')

STREAM_RETRY_MS = 5000


def _sale_branch(request, user):
    """
    ``(branch, error_message)``: the caller's branch; ADMIN may pick another
    one with ``sucursal_id``.
    """
    branch_id = request.data.get('sucursal_id')
    if branch_id and is_admin_request(request):
        if not is_id(branch_id):
            return None, 'sucursal_id inválido'
        branch = Branch.objects.filter(pk=branch_id).first()
    else:
        branch = resolve_branch_for_user(user)
    if branch is None:
        return None, 'No se pudo resolver sucursal (asigna sucursal al usuario o crea sucursal SP).'
    return branch, None


# Sale registration
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def create_sale(request):
    """Register a sale with explicit lines and payments"""
    data = request.data
    items, payments = data.get('items'), data.get('pagos')
    if not data.get('sucursal_id') or not isinstance(items, list) or not items \
            or not isinstance(payments, list) or not payments:
        return error_response('sucursal_id, items y pagos son obligatorios')
    if not is_id(data['sucursal_id']):
        return error_response('sucursal_id inválido')

    branch = get_object_or_404(Branch, pk=data['sucursal_id'])
    user = get_request_user(request)
    with transaction.atomic():
        sale = register_sale(
            branch, user, items, payments,
            customer_name=data.get('cliente_nombre'),
            discount=data.get('descuento'),
            tax=data.get('impuesto'),
            notes=data.get('notas'),
        )
    create_audit_log(request=request, action='sale', model_name='Sale', object_id=sale.pk,
                     changes={'total': str(sale.total)})
    return ok_response(
        {'id': sale.pk, 'estado': sale.status, 'subtotal': money_float(sale.subtotal),
         'descuento': money_float(sale.discount), 'impuesto': money_float(sale.tax),
         'total': money_float(sale.total)},
        message='Venta registrada',
        status_code=status.HTTP_201_CREATED,
    )


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def create_pos_sale(request):
    """
    Point-of-sale checkout with one payment. VITRINA is topped up from
    BODEGA automatically; cash payments return the change.
    """
    data = request.data
    items = data.get('items')
    if not isinstance(items, list) or not items:
        return error_response('Items inválidos')

    user = get_request_user(request)
    branch, message = _sale_branch(request, user)
    if branch is None:
        return error_response(message)

    card = {
        'card_brand': data.get('tarjeta_marca'),
        'card_last4': data.get('tarjeta_ultimos4'),
        'auth_code': data.get('codigo_autorizacion'),
        'processor_txn_id': data.get('transaccion_id'),
        'reference': data.get('referencia'),
    }
    with transaction.atomic():
        sale, change, transfers = register_pos_sale(
            branch, user, items,
            method=data.get('metodo_pago'),
            cash_received=data.get('efectivo_recibido'),
            customer_name=data.get('cliente_nombre'),
            card_details=card,
        )
    create_audit_log(request=request, action='sale', model_name='Sale', object_id=sale.pk,
                     changes={'total': str(sale.total), 'pos': True})
    return ok_response(
        {
            'venta_id': sale.pk,
            'total': money_float(sale.total),
            'cambio': money_float(change) if change is not None else None,
            'inventario': transfers,
        },
        message='Venta registrada',
        status_code=status.HTTP_201_CREATED,
    )


# Live summary
def _summary_args(request):
    """``(day_iso, scope, branch_id, user_id)`` or an error message"""
    raw_day = request.query_params.get('date')
    if raw_day:
        day = parse_iso_date(raw_day)
        if day is None:
            return None, 'Parámetro "date" inválido (YYYY-MM-DD)'
    else:
        day = timezone.localdate()

    admin = is_admin_request(request)
    scope = str(request.query_params.get('scope') or '').strip().upper()
    if scope not in (SCOPE_USER, SCOPE_BRANCH):
        scope = SCOPE_BRANCH if admin else SCOPE_USER

    user = get_request_user(request)
    branch_id = None
    if admin:
        branch_id, ok = id_param(request.query_params, 'sucursal_id')
        if not ok:
            return None, 'sucursal_id inválido'
    branch = Branch.objects.filter(pk=branch_id).first() if branch_id else resolve_branch_for_user(user)
    if branch is None:
        return None, 'No se pudo resolver sucursal'
    return (day.isoformat(), scope, branch.pk, user.pk if user else None), None


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def summary_today(request):
    """Day totals for the caller (USER) or their branch (SUCURSAL)"""
    args, message = _summary_args(request)
    if args is None:
        return error_response(message)
    return ok_response(build_summary(*args))


@api_view(['GET'])
@authentication_classes([QueryParamJWTAuthentication])
@renderer_classes([JSONRenderer, EventStreamRenderer])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def summary_stream(request):
    """
    Server-sent events: one ``summary`` frame, then the client reconnects
    after ``retry`` milliseconds.
    """
    args, message = _summary_args(request)
    if args is None:
        return error_response(message)
    summary = build_summary(*args)

    def frames():
        yield f'retry: {STREAM_RETRY_MS}\n\n'
        payload = json.dumps({'ok': True, 'data': summary}, cls=DjangoJSONEncoder)
        yield f'event: summary\ndata: {payload}\n\n'

    response = StreamingHttpResponse(frames(), content_type='text/event-stream')
    response['Cache-Control'] = 'no-cache'
    response['X-Accel-Buffering'] = 'no'
    return response


# Product maintenance from the sales screen
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def manual_product_create(request):
    """Register (or refresh) a product typed in at the counter"""
    user = get_request_user(request)
    with transaction.atomic():
        product, created = save_manual_product(request.data, user_id=user.pk if user else None)
    create_audit_log(request=request, action='create' if created else 'update', model_name='Product',
                     object_id=product.pk, object_name=product.name, changes={'manual': True})
    logger.info(f"Manual product {product.sku} {'created' if created else 'updated'}")
    return ok_response(
        ProductSerializer(product).data,
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def manual_product_delete(request, pk):
    product = get_object_or_404(Product, pk=pk)
    name = product.name
    with transaction.atomic():
        archived = remove_manual_product(product)
    create_audit_log(request=request, action='archive' if archived else 'delete', model_name='Product',
                     object_id=pk, object_name=name)
    if archived:
        return ok_response(
            {'id': pk, 'archivado': True},
            message='Producto eliminado correctamente. El código de barras queda bloqueado para futuros registros.',
        )
    return ok_response({'id': pk, 'archivado': False}, message='Producto eliminado correctamente.')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def bulk_products(request):
    """Save edited product rows in one transaction"""
    items = request.data.get('items')
    if not isinstance(items, list) or not items:
        return error_response('No hay productos para actualizar.')

    with suspend_cache_signals():
        with transaction.atomic():
            updated = bulk_update_products(items)
    invalidate_stock_cache()
    invalidate_sales_cache()
    create_audit_log(request=request, action='bulk_update', model_name='Product', object_id='bulk',
                     changes={'count': updated})
    return ok_response({'actualizados': updated}, message='Productos actualizados correctamente.')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrCashier])
def import_excel(request):
    """
    Price list upload (any multipart field name). Prices of matching
    products are replaced; unknown rows are only reported.
    """
    upload = next(iter(request.FILES.values()), None)
    if upload is None:
        return error_response('No se recibió archivo. Envíe un .xlsx en multipart/form-data.')

    factor = request.data.get('mayorista_factor') or request.query_params.get('mayorista_factor')
    with suspend_cache_signals():
        result = import_price_list(upload, factor=factor)
    invalidate_stock_cache()
    invalidate_sales_cache()
    create_audit_log(request=request, action='import', model_name='Product', object_id='price-list',
                     object_name=getattr(upload, 'name', None), changes=result['resumen'])
    return ok_response(result, message='Importación completada')
