"""
Error taxonomy and the project-wide DRF exception handler.

Every error leaving the API is rendered as ``{"success": false, "message": ...}``
with a single human-readable message.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ValidationFailed(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid request data.'
    default_code = 'invalid'


class AuthorizationError(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'


class NotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'not_found'


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with the current state of the resource.'
    default_code = 'conflict'


def flatten_errors(detail):
    """
    Reduce DRF error detail (dict, list or string) to one message string.

    Field errors become "field: message" pairs joined by "; ".
    Non-field errors and "detail" keep only their message.

    Args:
        detail: Error detail as produced by DRF

    Returns:
        str: Single human-readable message
    """
    if isinstance(detail, dict):
        parts = []
        for field, value in detail.items():
            message = flatten_errors(value)
            if field in ('detail', 'non_field_errors', '__all__'):
                parts.append(message)
            else:
                parts.append(f'{field}: {message}')
        return '; '.join(part for part in parts if part)

    if isinstance(detail, (list, tuple)):
        return ' '.join(flatten_errors(item) for item in detail)

    return str(detail)


# MySQL error codes for duplicate key, foreign key, NOT NULL and CHECK violations
MYSQL_CONSTRAINT_CODES = {1048, 1062, 1451, 1452, 3819}


def is_constraint_violation(exc):
    """
    True when an IntegrityError comes from a violated constraint.

    Other integrity failures, such as SQLite's "datatype mismatch", are
    server errors rather than conflicts.
    """
    cause = exc.__cause__ or exc
    if cause.args and cause.args[0] in MYSQL_CONSTRAINT_CODES:
        return True
    message = str(exc).lower()
    return 'constraint' in message or 'duplicate' in message


def envelope_exception_handler(exc, context):
    """
    Map any exception raised in a view to the response envelope.

    - Django ValidationError (from model full_clean) -> 400
    - IntegrityError from a violated constraint -> 409
    - DRF exceptions and Http404/PermissionDenied keep their status
    - Anything else -> 500 with a generic message, logged with traceback
    """
    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'error_dict'):
            exc = DRFValidationError(detail=exc.message_dict)
        else:
            exc = DRFValidationError(detail=exc.messages)

    if isinstance(exc, IntegrityError) and is_constraint_violation(exc):
        logger.warning(f"Integrity error mapped to conflict: {exc}")
        exc = ConflictError('The request conflicts with an existing record.')

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.error(
            f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
            exc_info=exc
        )
        return Response(
            {'success': False, 'message': 'An unexpected error occurred.'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    response.data = {
        'success': False,
        'message': flatten_errors(response.data) or 'Request failed.',
    }
    return response
