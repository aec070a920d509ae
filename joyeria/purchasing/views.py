import logging

from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, renderer_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.renderers import JSONRenderer

from joyeria.core.cache_signals import suspend_cache_signals
from joyeria.core.cache_utils import invalidate_stock_cache
from joyeria.core.permissions import IsAdminRole
from joyeria.core.utils import (
    create_audit_log, error_response, get_request_user, is_id, ok_response, resolve_branch_for_user,
)
from joyeria.locations.models import Branch

from .labels import labels_pdf, purchase_labels
from .models import Purchase, Supplier
from .renderers import PdfRenderer
from .serializers import PurchaseItemSerializer, PurchaseSerializer
from .services import import_purchase

logger = logging.getLogger('joyeria.purchasing')

RECENT_LIMIT = 20


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_list(request):
    """Latest confirmed purchases"""
    try:
        limit = int(request.query_params.get('limit', 20))
    except (TypeError, ValueError):
        limit = 20
    limit = min(max(limit, 1), 200)
    purchases = (Purchase.objects.filter(status=Purchase.CONFIRMED)
                 .select_related('supplier', 'branch')
                 .order_by('-created_at')[:limit])
    return ok_response({'items': PurchaseSerializer(purchases, many=True).data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_recent(request):
    """The 20 most recent purchases in any state"""
    purchases = (Purchase.objects.select_related('supplier', 'branch')
                 .order_by('-created_at')[:RECENT_LIMIT])
    return ok_response({'items': PurchaseSerializer(purchases, many=True).data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_import(request):
    """Bulk purchase import with pricing; the purchase is confirmed into BODEGA"""
    data = request.data
    items = data.get('items')
    if not isinstance(items, list) or not items:
        return error_response('No se recibieron items para la compra')

    user = get_request_user(request)
    if data.get('sucursalId'):
        branch = Branch.objects.filter(pk=data['sucursalId']).first() if is_id(data['sucursalId']) else None
        if branch is None:
            return error_response('Sucursal invalida')
    else:
        branch = resolve_branch_for_user(None)
        if branch is None:
            return error_response('No se encontró la sucursal principal (codigo = SP)')

    supplier = None
    if data.get('proveedorId'):
        supplier = Supplier.objects.filter(pk=data['proveedorId']).first() if is_id(data['proveedorId']) else None
        if supplier is None:
            return error_response('Proveedor invalido')

    with suspend_cache_signals():
        purchase, summary, errors = import_purchase(
            branch, items,
            user_id=user.pk if user else None,
            supplier=supplier,
            currency=data.get('moneda') or 'GTQ',
            exchange_rate=data.get('tipoCambio'),
            default_margin=data.get('margenDefault', '0.4'),
        )
    invalidate_stock_cache()
    create_audit_log(request=request, action='purchase_confirm', model_name='Purchase',
                     object_id=purchase.pk, changes={'rows': len(summary), 'errors': len(errors)})
    logger.info(f"Purchase {purchase.pk} imported with {len(summary)} row(s), {len(errors)} rejected")
    return ok_response(
        {
            'compra': PurchaseSerializer(purchase).data,
            'items': PurchaseItemSerializer(purchase.items.select_related('product'), many=True).data,
            'resumen': summary,
            'errores': errors,
        },
        message='Compra importada y confirmada correctamente',
        status_code=status.HTTP_201_CREATED,
    )


@api_view(['GET'])
@renderer_classes([JSONRenderer, PdfRenderer])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_labels_pdf(request, pk):
    """PDF with one barcode label per purchased piece"""
    purchase = Purchase.objects.select_related('supplier').filter(pk=pk).first()
    if purchase is None:
        return error_response('Compra no encontrada', status.HTTP_404_NOT_FOUND)
    if not purchase.items.exists():
        return error_response('La compra no tiene detalle para generar etiquetas')

    labels = purchase_labels(purchase)
    response = HttpResponse(labels_pdf(purchase, labels), content_type='application/pdf')
    response['Content-Disposition'] = f'inline; filename="etiquetas-{purchase.pk}.pdf"'
    logger.info(f"Printed {len(labels)} label(s) for purchase {purchase.pk}")
    return response
