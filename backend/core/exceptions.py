"""
Domain exceptions and the DRF exception handler that renders every error
as {status, error, message, path, timestamp}.
"""
import logging

from django.http import Http404
from django.utils import timezone
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

logger = logging.getLogger('backend.core')


class SGPCException(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    title = 'Bad request'
    default_detail = 'Bad request.'


class ResourceNotFound(SGPCException):
    status_code = status.HTTP_404_NOT_FOUND
    title = 'Not found'
    default_detail = 'Resource not found.'


class ResourceAlreadyExists(SGPCException):
    status_code = status.HTTP_409_CONFLICT
    title = 'Conflict'
    default_detail = 'Resource already exists.'


class InvalidDate(SGPCException):
    title = 'Invalid date'
    default_detail = 'Invalid date.'


class InvalidStatus(SGPCException):
    title = 'Invalid status'
    default_detail = 'Invalid status.'


class InsufficientStock(SGPCException):
    title = 'Insufficient stock'
    default_detail = 'Insufficient stock.'


class InvalidMovementType(SGPCException):
    title = 'Invalid movement type'
    default_detail = "Invalid movement type. Use 'ENTRADA' or 'SAIDA'."


class BusinessRuleViolation(SGPCException):
    title = 'Business rule violation'
    default_detail = 'Operation not allowed.'


class InvalidResetToken(SGPCException):
    title = 'Invalid token'
    default_detail = 'Invalid token.'


class InvalidCredentials(SGPCException):
    status_code = status.HTTP_401_UNAUTHORIZED
    title = 'Invalid credentials'
    default_detail = 'Invalid credentials.'


class InactiveAccount(SGPCException):
    status_code = status.HTTP_401_UNAUTHORIZED
    title = 'Inactive account'
    default_detail = 'Inactive account.'


def _title_for(exc):
    if isinstance(exc, SGPCException):
        return exc.title
    if isinstance(exc, (InvalidToken, exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        return 'Unauthorized'
    if isinstance(exc, exceptions.PermissionDenied):
        return 'Access denied'
    if isinstance(exc, exceptions.ValidationError):
        return 'Validation error'
    if isinstance(exc, exceptions.NotFound):
        return 'Not found'
    if isinstance(exc, exceptions.MethodNotAllowed):
        return 'Method not allowed'
    return 'Error'


def _message_for(detail):
    """Flatten DRF error details into one readable line"""
    if isinstance(detail, dict):
        if 'detail' in detail:
            return _message_for(detail['detail'])
        parts = []
        for field, value in detail.items():
            parts.append(f"{field}: {_message_for(value)}")
        return '; '.join(parts)
    if isinstance(detail, (list, tuple)):
        return ' '.join(_message_for(item) for item in detail)
    return str(detail)


def error_body(status_code, error, message, request=None, details=None):
    body = {
        'status': status_code,
        'error': error,
        'message': message,
        'path': request.path if request is not None else None,
        'timestamp': timezone.now().isoformat(),
    }
    if details is not None:
        body['details'] = details
    return body


def sgpc_exception_handler(exc, context):
    """REST_FRAMEWORK['EXCEPTION_HANDLER']"""
    request = context.get('request')

    if isinstance(exc, Http404):
        exc = ResourceNotFound(str(exc) or None)
    elif isinstance(exc, TokenError):
        exc = InvalidToken(str(exc))

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.error(f"Unhandled error in {view.__class__.__name__ if view else 'view'}: {exc}", exc_info=exc)
        return Response(
            error_body(500, 'Internal server error', 'Internal server error', request),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    details = None
    if isinstance(exc, exceptions.ValidationError) and isinstance(response.data, (dict, list)):
        details = response.data

    response.data = error_body(
        response.status_code,
        _title_for(exc),
        _message_for(response.data),
        request,
        details,
    )
    return response
