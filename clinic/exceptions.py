"""
Error types and the DRF exception handler.

Every error response has the shape
``{"ok": false, "error": {"code": ..., "message": ...}}`` so that the
front-end can branch on ``error.code`` without parsing messages.
"""
from __future__ import annotations

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class InvalidArgument(ValueError):
    """A malformed or out-of-range argument reached the resolver or evaluator.

    This signals a caller bug and must never be confused with a normal
    deny/false decision.
    """


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with the current state of the resource.'
    default_code = 'conflict'


def _view_name(context) -> str:
    request = context.get('request') if context else None
    if request is None:
        return 'unknown'
    return f"{request.method} {request.path}"


def api_exception_handler(exc, context):
    if isinstance(exc, InvalidArgument):
        logger.warning("Invalid argument in %s: %s", _view_name(context), exc)
        return Response(
            {'ok': False, 'error': {'code': 'invalid_argument', 'message': str(exc)}},
            status=status.HTTP_400_BAD_REQUEST,
        )
    if isinstance(exc, DjangoValidationError):
        # model clean() failures
        exc = exceptions.ValidationError(
            detail=exc.message_dict if hasattr(exc, 'error_dict') else {'non_field_errors': exc.messages}
        )

    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.error("Unhandled exception in %s", _view_name(context), exc_info=exc)
        return Response(
            {'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error'}},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, exceptions.ValidationError):
        resp.data = {
            'ok': False,
            'error': {'code': 'validation_error', 'message': 'Invalid input', 'fields': resp.data},
        }
        return resp

    if isinstance(exc, Http404):
        code = 'not_found'
    else:
        # a code passed at raise time wins over the class default
        code = getattr(getattr(exc, 'detail', None), 'code', None) or getattr(exc, 'default_code', None) or 'api_error'
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = str(resp.data)
    resp.data = {'ok': False, 'error': {'code': code, 'message': detail}}
    return resp
