"""
Barcode labels for purchased pieces, rendered locally with python-barcode and
Pillow and laid out three per row on A4 pages.
"""
import io
import logging
from decimal import Decimal, ROUND_HALF_UP

import barcode
from barcode.writer import ImageWriter
from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger('joyeria.purchasing')

DPI = 100
PAGE_SIZE = (827, 1169)  # A4 at 100 DPI
PAGE_MARGIN = 20
COLUMNS = 3
COLUMN_GAP = 10
ROW_GAP = 10
LABEL_HEIGHT = 110
HEADER_HEIGHT = 60
MAX_NAME_LENGTH = 28
UNIT = Decimal('1')

LABEL_WIDTH = (PAGE_SIZE[0] - 2 * PAGE_MARGIN - (COLUMNS - 1) * COLUMN_GAP) // COLUMNS


def _fonts():
    try:
        return (
            ImageFont.truetype('/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf', 14),
            ImageFont.truetype('/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf', 11),
        )
    except (OSError, IOError):
        return ImageFont.load_default(), ImageFont.load_default()


def purchase_labels(purchase):
    """One label per purchased unit: quantities are rounded, never below 1"""
    labels = []
    for item in purchase.items.select_related('product'):
        product = item.product
        copies = max(1, int(item.quantity.quantize(UNIT, rounding=ROUND_HALF_UP)))
        for _ in range(copies):
            labels.append({
                'sku': product.sku,
                'nombre': product.name,
                'codigo_barras': product.barcode or product.sku,
            })
    return labels


def _barcode_image(value, size):
    code128 = barcode.get_barcode_class('code128')
    image = code128(value, writer=ImageWriter()).render({
        'write_text': False,
        'module_width': 0.3,
        'module_height': 10.0,
        'quiet_zone': 1.0,
        'font_size': 0,
        'text_distance': 0,
        'background': 'white',
        'foreground': 'black',
    })
    return image.resize(size, Image.Resampling.BILINEAR)


def render_label(label):
    """Single label: name, SKU, barcode value and the Code128 bars"""
    image = Image.new('RGB', (LABEL_WIDTH, LABEL_HEIGHT), color='white')
    draw = ImageDraw.Draw(image)
    font_title, font_small = _fonts()
    padding = 6

    draw.rounded_rectangle((0, 0, LABEL_WIDTH - 1, LABEL_HEIGHT - 1), radius=6, outline='#555555')
    name = label['nombre'] or ''
    if len(name) > MAX_NAME_LENGTH:
        name = name[:MAX_NAME_LENGTH] + '...'
    draw.text((padding, padding), name, fill='black', font=font_title)
    draw.text((padding, padding + 20), f"SKU: {label['sku'] or ''}", fill='#333333', font=font_small)

    value = label['codigo_barras']
    bars_height = 34
    bars_y = LABEL_HEIGHT - padding - bars_height
    draw.text((padding, bars_y - 14), value, fill='#333333', font=font_small)
    try:
        bars = _barcode_image(value, (LABEL_WIDTH - 2 * padding, bars_height))
    except Exception as e:
        logger.error(f"Barcode generation failed for '{value}': {e}", exc_info=True)
        draw.text((padding, bars_y), f'BARCODE: {value}', fill='black', font=font_small)
    else:
        image.paste(bars, (padding, bars_y))
    return image


def _new_page(header_lines=()):
    page = Image.new('RGB', PAGE_SIZE, color='white')
    if header_lines:
        draw = ImageDraw.Draw(page)
        font_title, font_small = _fonts()
        y = PAGE_MARGIN
        for index, line in enumerate(header_lines):
            font = font_title if index == 0 else font_small
            width = draw.textbbox((0, 0), line, font=font)[2]
            draw.text(((PAGE_SIZE[0] - width) // 2, y), line, fill='black', font=font)
            y += 18
    return page


def layout_pages(labels, header_lines=()):
    """Paste labels into A4 pages; the header only goes on the first page"""
    pages = [_new_page(header_lines)]
    top = PAGE_MARGIN + (HEADER_HEIGHT if header_lines else 0)
    y, column = top, 0
    for label in labels:
        if column >= COLUMNS:
            column = 0
            y += LABEL_HEIGHT + ROW_GAP
        if y + LABEL_HEIGHT > PAGE_SIZE[1] - PAGE_MARGIN:
            pages.append(_new_page())
            y, column = PAGE_MARGIN, 0
        x = PAGE_MARGIN + column * (LABEL_WIDTH + COLUMN_GAP)
        pages[-1].paste(render_label(label), (x, y))
        column += 1
    return pages


def labels_pdf(purchase, labels):
    """PDF bytes with every label of ``purchase``"""
    header = ['Joyería - Etiquetas de compra']
    if purchase.supplier_id:
        header.append(f'Proveedor: {purchase.supplier.name}')
    header.append(f'Compra: {purchase.pk}')

    pages = layout_pages(labels, header)
    buffer = io.BytesIO()
    pages[0].save(buffer, format='PDF', save_all=True, append_images=pages[1:], resolution=DPI)
    for page in pages:
        page.close()
    return buffer.getvalue()
