import random
import re
import time
import unicodedata

# Keyword -> category name, checked in order
CATEGORY_KEYWORDS = [
    (('arete', 'aros'), 'Aretes'),
    (('anillo', 'ring'), 'Anillos'),
    (('collar',), 'Collares'),
    (('cadena',), 'Cadenas'),
    (('tobillera',), 'Tobilleras'),
    (('pulsera', 'brazalete', 'bracelet'), 'Pulseras'),
    (('pendiente',), 'Pendientes'),
    (('reloj',), 'Relojes'),
    (('set',), 'Sets'),
]

BARCODE_PLACEHOLDERS = {'', '-', '--', 'N/A', 'NA', 'NULL', 'NONE', '0', 'SIN CODIGO'}


def strip_accents(value):
    normalized = unicodedata.normalize('NFD', value or '')
    return ''.join(ch for ch in normalized if unicodedata.category(ch) != 'Mn')


def normalize_category_name(name):
    """``'  Ánillos  '`` -> ``'anillos'``"""
    return re.sub(r'\s+', ' ', strip_accents(name).strip().lower())


def detect_category_from_name(name):
    """Guess a category from keywords in a product name"""
    if not name:
        return None
    lowered = strip_accents(name).lower()
    for keywords, category in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


def generate_sku_from_name(name):
    """Build ``NAME-1234`` from the first ten alphanumerics of a name"""
    if not name or not isinstance(name, str):
        return f"PROD-{format(int(time.time() * 1000), 'X')}"
    base = re.sub(r'[^A-Z0-9]+', '-', strip_accents(name).upper()).strip('-')[:10].strip('-') or 'PROD'
    return f"{base}-{random.randint(1000, 9999)}"


def clean_barcode(value):
    """Return ``None`` for empty or placeholder barcodes"""
    if value is None:
        return None
    text = str(value).strip()
    if text.upper() in BARCODE_PLACEHOLDERS:
        return None
    return text


def find_or_create_category(name):
    """Category lookup by normalized name, creating it when missing"""
    from .models import Category

    if not name or not str(name).strip():
        return None
    category, _ = Category.objects.get_or_create(
        name_norm=normalize_category_name(name),
        defaults={'name': str(name).strip()},
    )
    return category
