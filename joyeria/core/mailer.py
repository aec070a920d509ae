"""Transactional e-mail for password setup and recovery"""
import logging
from urllib.parse import urlencode

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)

RESET_PATH = '/dashboard/reset-password'
SETUP_PATH = '/reset-password'

EMAIL_TEMPLATE = """<!doctype html>
<html lang="es">
  <body style="margin:0;padding:24px;background:#0f0a0a;font-family:Arial,Helvetica,sans-serif;">
    <div style="max-width:560px;margin:0 auto;background:#1a0c10;border:1px solid #3a1a22;border-radius:18px;padding:22px;">
      <h1 style="margin:0;color:#f8f1e6;font-size:20px;text-align:center;">{title}</h1>
      <p style="color:#e3d2bd;font-size:13px;line-height:1.6;text-align:center;">{intro}</p>
      <p style="color:#e8cf8f;font-size:12px;">Este enlace vence en <b>15 minutos</b> y solo puede usarse <b>una vez</b>.</p>
      <p style="text-align:center;">
        <a href="{url}" style="display:inline-block;padding:12px 18px;border-radius:12px;background:#d6b25f;color:#2b0a0b;font-weight:700;text-decoration:none;">{title}</a>
      </p>
      <p style="color:#c9b296;font-size:12px;word-break:break-all;">{url}</p>
      <p style="color:#a98c73;font-size:11px;">Si usted no solicitó esto, ignore este correo.</p>
    </div>
  </body>
</html>"""


def build_link(path, token, email):
    return f"{settings.APP_URL}{path}?{urlencode({'token': token, 'email': email})}"


def _send(to, subject, title, intro, url):
    html = EMAIL_TEMPLATE.format(title=title, intro=intro, url=url)
    text = f"{title} (vence en 15 min): {url}"
    send_mail(
        subject=subject,
        message=text,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[to],
        html_message=html,
        fail_silently=False,
    )
    logger.info(f"Sent '{subject}' e-mail to {to}")


def send_password_reset_email(email, token):
    url = build_link(RESET_PATH, token, email)
    _send(email, 'Recuperar contraseña', 'Restablecer contraseña',
          'Use el siguiente enlace para crear una nueva contraseña.', url)


def send_password_setup_email(email, token):
    url = build_link(SETUP_PATH, token, email)
    _send(email, 'Establecer Contraseña', 'Establecer contraseña',
          'Use el siguiente enlace para definir su contraseña de acceso.', url)
