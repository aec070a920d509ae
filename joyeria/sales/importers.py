"""
Price list import from spreadsheets.

Rows are matched to existing products by SKU first and by barcode second.
Nothing is created; unknown and archived products are reported back.
"""
import logging
import re
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from openpyxl import load_workbook

from joyeria.catalog.models import Product
from joyeria.catalog.utils import detect_category_from_name, find_or_create_category, strip_accents
from joyeria.core.exceptions import ApiError
from joyeria.core.utils import money, to_decimal

logger = logging.getLogger('joyeria.sales')

SKU_KEYS = ('sku', 'producto_sku')
BARCODE_KEYS = ('bar_code', 'barcode', 'codigo_barras', 'codigo_de_barras')
NAME_KEYS = ('articulo', 'nombre', 'producto', 'descripcion')
PRICE_KEYS = ('precio_cliente_final', 'precio_final', 'precio_publico', 'precio_venta', 'precio')
WHOLESALE_KEYS = ('precio_mayorista', 'mayorista', 'precio_wholesale')
CATEGORY_KEYS = ('categoria', 'category')

# Spreadsheet article prefixes seen in supplier files
ARTICLE_CATEGORY_HINTS = (
    (('n_cadena', 'n-cadena'), 'Cadenas'),
    (('razalete', 'bw_pulsera', 'bw-pulsera'), 'Pulseras'),
    (('p_endiente', 'p-endiente'), 'Pendientes'),
)
REPORT_LIMIT = 50


def normalize_key(key):
    """``'Precio Cliente Final'`` -> ``'precio_cliente_final'``"""
    text = strip_accents(str(key or '')).strip().lower()
    return re.sub(r'[^a-z0-9]+', '_', text).strip('_')


def pick_any(row, keys):
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip() != '':
            return value
    return None


def parse_money(value):
    """
    Parse spreadsheet money: ``Q36.41``, ``1,234.56`` and ``36,41`` all work.

    >>> parse_money('Q1,234.56')
    Decimal('1234.56')
    >>> parse_money('36,41')
    Decimal('36.41')
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return to_decimal(value)
    text = re.sub(r'[^\d.,-]', '', str(value).strip())
    if not text:
        return None
    if '.' in text and ',' in text:
        text = text.replace(',', '')
    elif ',' in text:
        text = text.replace(',', '.')
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def is_usable_identifier(value):
    """Barcodes shorter than 4 characters (``E``, ``R``...) are placeholders"""
    return bool(value) and len(str(value).strip()) >= 4


def category_from_article(article):
    if not article:
        return None
    lowered = article.strip().lower()
    for hints, category in ARTICLE_CATEGORY_HINTS:
        if any(hint in lowered for hint in hints):
            return category
    return detect_category_from_name(article)


def read_spreadsheet_rows(upload):
    """Rows of the first sheet as dicts keyed by normalized header"""
    try:
        workbook = load_workbook(upload, read_only=True, data_only=True)
    except Exception as e:
        logger.warning(f"Could not read uploaded workbook: {e}")
        raise ApiError('No se pudo leer el archivo. Envíe un archivo .xlsx válido.')
    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        keys = [normalize_key(cell) for cell in header]
        result = []
        for values in rows:
            if values is None or all(v is None or str(v).strip() == '' for v in values):
                continue
            result.append({key: value for key, value in zip(keys, values) if key})
        return result
    finally:
        workbook.close()


def wholesale_factor(raw=None):
    factor = to_decimal(raw if raw not in (None, '') else getattr(settings, 'WHOLESALE_FACTOR', None))
    if factor is None or factor <= 0 or factor > 1:
        return Decimal('0.9')
    return factor


def parse_rows(rows):
    """Split raw rows into candidates and invalid rows; row numbers are 1-based plus header"""
    parsed, invalid = [], []
    for index, row in enumerate(rows):
        line = index + 2
        barcode = str(pick_any(row, BARCODE_KEYS) or '').strip()
        sku = str(pick_any(row, SKU_KEYS) or '').strip()
        article = str(pick_any(row, NAME_KEYS) or '').strip()
        price = parse_money(pick_any(row, PRICE_KEYS))
        wholesale = parse_money(pick_any(row, WHOLESALE_KEYS))
        category = str(pick_any(row, CATEGORY_KEYS) or '').strip()

        has_identifier = bool(sku) or is_usable_identifier(barcode)
        if not has_identifier or price is None:
            invalid.append({
                'fila': line,
                'motivo': ('Sin SKU ni Bar Code usable (ej: \'E\', \'R\' o vacío)'
                           if not has_identifier else 'Precio cliente final inválido'),
                'barcode': barcode,
                'sku': sku,
                'articulo': article,
            })
            continue
        parsed.append({
            'fila': line,
            'barcode': barcode,
            'sku': sku,
            'articulo': article,
            'precio': money(price),
            'mayorista': money(wholesale) if wholesale is not None else None,
            'categoria': category or category_from_article(article),
        })
    return parsed, invalid


def import_price_list(upload, factor=None):
    """Apply a price spreadsheet; returns the response payload"""
    rows = read_spreadsheet_rows(upload)
    if not rows:
        raise ApiError('El archivo no contiene filas para procesar.')

    factor = wholesale_factor(factor)
    parsed, invalid = parse_rows(rows)
    if not parsed:
        raise ApiError("No hay filas válidas para procesar. Revisa columnas y que exista 'PRECIO CLIENTE FINAL'.",
                       extra={'invalidas': invalid[:30]})

    skus = {row['sku'] for row in parsed if row['sku']}
    barcodes = {row['barcode'] for row in parsed if is_usable_identifier(row['barcode'])}
    candidates = list(Product.objects.filter(sku__in=skus)) + list(Product.objects.filter(barcode__in=barcodes))
    by_sku = {p.sku.strip(): p for p in candidates}
    by_barcode = {p.barcode.strip(): p for p in candidates if p.barcode}

    not_found, archived, updates = [], [], []
    for row in parsed:
        product = by_sku.get(row['sku']) if row['sku'] else None
        if product is None and is_usable_identifier(row['barcode']):
            product = by_barcode.get(row['barcode'])
        if product is None:
            not_found.append({'fila': row['fila'], 'barcode': row['barcode'], 'sku': row['sku'] or None,
                              'articulo': row['articulo'], 'precio_cliente_final': float(row['precio'])})
            continue
        if product.is_archived:
            archived.append({'fila': row['fila'], 'sku': row['sku'] or product.sku, 'articulo': row['articulo'],
                             'nota': 'Producto está archivado; no se actualiza por seguridad.'})
            continue

        if row['mayorista'] is not None:
            wholesale = row['mayorista']
        elif product.wholesale_price is not None:
            wholesale = product.wholesale_price
        else:
            wholesale = money(row['precio'] * factor)
        updates.append((product, row['precio'], wholesale, row['categoria']))

    if updates:
        with transaction.atomic():
            categories = {}
            for product, price, wholesale, category_name in updates:
                if category_name and category_name not in categories:
                    categories[category_name] = find_or_create_category(category_name)
                product.sale_price = price
                product.wholesale_price = wholesale
                product.is_active = True
                product.is_archived = False
                if category_name and categories[category_name] is not None:
                    product.category = categories[category_name]
                product.save(update_fields=['sale_price', 'wholesale_price', 'is_active', 'is_archived',
                                            'category', 'updated_at'])

    logger.info(f"Price list import: {len(updates)} updated, {len(not_found)} not found, {len(invalid)} invalid")
    return {
        'resumen': {
            'filas_total': len(rows),
            'filas_validas': len(parsed),
            'actualizados': len(updates),
            'no_encontrados': len(not_found),
            'archivados': len(archived),
            'invalidas': len(invalid),
            'mayorista_factor_usado': float(factor),
        },
        'no_encontrados': not_found[:REPORT_LIMIT],
        'archivados': archived[:REPORT_LIMIT],
        'invalidas': invalid[:REPORT_LIMIT],
    }
