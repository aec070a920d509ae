import json

from django.core.serializers.json import DjangoJSONEncoder
from rest_framework.renderers import BaseRenderer


class PdfRenderer(BaseRenderer):
    """
    Accepts ``Accept: application/pdf`` during content negotiation.
    PDF responses bypass it; only error envelopes are rendered, as JSON.
    """
    media_type = 'application/pdf'
    format = 'pdf'
    charset = None
    render_style = 'binary'

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if data is None:
            return b''
        return json.dumps(data, cls=DjangoJSONEncoder).encode('utf-8')
