"""Project-wide DRF exception handling using the ``{ok, message}`` envelope"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, Throttled, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler
from rest_framework_simplejwt.exceptions import InvalidToken

logger = logging.getLogger('joyeria.errors')


class ApiError(APIException):
    """
    Abort a request with a specific status code and payload. Raising it
    inside ``transaction.atomic()`` rolls the transaction back.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Solicitud inválida'

    def __init__(self, message=None, status_code=None, code=None, extra=None):
        if status_code is not None:
            self.status_code = status_code
        self.error_code = code
        self.extra = extra or {}
        super().__init__(detail=message or self.default_detail, code=code)


def _first_message(data):
    if isinstance(data, dict):
        if 'detail' in data:
            return _first_message(data['detail'])
        for value in data.values():
            return _first_message(value)
        return ''
    if isinstance(data, (list, tuple)):
        return _first_message(data[0]) if data else ''
    return str(data)


def api_exception_handler(exc, context):
    if isinstance(exc, ApiError):
        body = {'ok': False, 'message': str(exc.detail)}
        if exc.error_code:
            body['code'] = exc.error_code
        body.update(exc.extra)
        return Response(body, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        request = context.get('request')
        path = getattr(request, 'path', '?')
        logger.error(f"Unhandled error on {path}: {exc}", exc_info=exc)
        return Response(
            {'ok': False, 'message': 'Error interno del servidor'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    body = {'ok': False}
    if isinstance(exc, NotAuthenticated):
        body['message'] = 'Token requerido'
    elif isinstance(exc, InvalidToken):
        body['message'] = 'Token inválido'
    elif response.status_code == status.HTTP_403_FORBIDDEN:
        body['message'] = 'Sin permisos'
    elif isinstance(exc, ValidationError):
        body['message'] = _first_message(response.data) or 'Datos inválidos'
        body['errors'] = response.data
    elif isinstance(exc, Throttled):
        body['message'] = 'Demasiadas solicitudes. Intente más tarde.'
    elif response.status_code == status.HTTP_404_NOT_FOUND:
        body['message'] = 'No encontrado'
    else:
        body['message'] = _first_message(response.data)
    response.data = body
    return response
