import json

from django.core.serializers.json import DjangoJSONEncoder
from rest_framework.renderers import BaseRenderer


class EventStreamRenderer(BaseRenderer):
    """
    Lets ``Accept: text/event-stream`` clients through content negotiation.
    Successful stream responses bypass rendering; error envelopes are sent
    as a single ``error`` event.
    """
    media_type = 'text/event-stream'
    format = 'sse'
    charset = 'utf-8'

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if data is None:
            return b''
        payload = json.dumps(data, cls=DjangoJSONEncoder)
        return f'event: error\ndata: {payload}\n\n'.encode(self.charset)
