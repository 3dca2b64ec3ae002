import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.views import TokenRefreshView

from . import notifications
from .exceptions import InvalidCredentials, InactiveAccount, InvalidResetToken
from .filters import AuditLogFilter
from .models import AuditLog, PasswordResetToken, ROLE_ADMIN
from .permissions import IsAdmin, IsAdminOrManager, is_admin_or_manager
from .serializers import (
    UserSerializer, UserCreateSerializer, UserUpdateSerializer, LoginSerializer,
    ForgotPasswordSerializer, ResetPasswordSerializer, AuditLogSerializer
)
from .utils import create_audit_log, paginate, snapshot

logger = logging.getLogger('backend.core')

User = get_user_model()


class SGPCTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['full_name'] = user.full_name
        token['roles'] = sorted(user.role_names)
        return token


class SGPCTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class SGPCTokenRefreshView(TokenRefreshView):
    serializer_class = SGPCTokenRefreshSerializer
    authentication_classes = []


def _token_response(user):
    refresh = SGPCTokenObtainPairSerializer.get_token(user)
    return {
        'token': str(refresh.access_token),
        'refresh': str(refresh),
        'type': 'Bearer',
        'user_id': user.id,
        'email': user.email,
        'full_name': user.full_name,
        'role': user.primary_role,
    }


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def login(request):
    """Authenticate with e-mail and password and return a JWT"""
    serializer = LoginSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    user = User.objects.filter(email__iexact=serializer.validated_data['email']).first()
    if user is None or not user.check_password(serializer.validated_data['password']):
        logger.warning(f"Failed login for {serializer.validated_data['email']}")
        raise InvalidCredentials()
    if not user.is_active:
        raise InactiveAccount()

    user.last_login = timezone.now()
    user.save(update_fields=['last_login'])
    logger.info(f"User {user.email} logged in")
    return Response(_token_response(user))


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def register(request):
    """Self-registration; the new account is an administrator"""
    serializer = UserCreateSerializer(data=request.data, context={'default_role': ROLE_ADMIN})
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    create_audit_log(request, 'CREATE', 'User', user.id, {'new': snapshot(user)}, user=user, object_name=user.email)
    logger.info(f"User registered: {user.email}")
    payload = _token_response(user)
    payload['user'] = UserSerializer(user).data
    return Response(payload, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def forgot_password(request):
    """Issue a reset token by e-mail; the answer never reveals whether the e-mail exists"""
    serializer = ForgotPasswordSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    user = User.objects.filter(email__iexact=serializer.validated_data['email']).first()
    if user is not None:
        with transaction.atomic():
            PasswordResetToken.objects.filter(user=user).delete()
            reset_token = PasswordResetToken.objects.create(user=user)
        notifications.send_password_reset_email(user.email, reset_token.token)
        logger.info(f"Password reset token issued for {user.email}")

    return Response({'message': 'If the email is registered, you will receive instructions to reset your password.'})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def reset_password(request):
    serializer = ResetPasswordSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    reset_token = PasswordResetToken.objects.select_related('user').filter(
        token=serializer.validated_data['token']
    ).first()
    if reset_token is None:
        raise InvalidResetToken('Invalid token.')
    if reset_token.is_expired():
        reset_token.delete()
        raise InvalidResetToken('Token expired.')

    user = reset_token.user
    user.set_password(serializer.validated_data['new_password'])
    user.save()
    reset_token.delete()
    logger.info(f"Password reset for {user.email}")
    return Response({'message': 'Password reset successfully.'})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with roles"""
    return Response(UserSerializer(request.user).data)


# User views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def user_list(request):
    users = User.objects.all().prefetch_related('groups').order_by('full_name')
    return Response(UserSerializer(users, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def user_active_list(request):
    users = User.objects.filter(is_active=True).prefetch_related('groups').order_by('full_name')
    return Response(UserSerializer(users, many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdmin])
def user_admin_create(request):
    """Create a user with an explicit role"""
    serializer = UserCreateSerializer(data=request.data, context={'require_role': True})
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    create_audit_log(request, 'CREATE', 'User', user.id, {'new': snapshot(user)}, object_name=user.email)
    logger.info(f"User {user.email} created by {request.user.email}")
    return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def user_detail(request, pk):
    """Retrieve (admin, manager or self) or update (admin) a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        if not is_admin_or_manager(request.user) and request.user.pk != user.pk:
            raise PermissionDenied('You can only view your own profile.')
        return Response(UserSerializer(user).data)

    if not request.user.has_role(ROLE_ADMIN):
        raise PermissionDenied('Only administrators can update users.')

    old_values = snapshot(user)
    serializer = UserUpdateSerializer(user, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    create_audit_log(request, 'UPDATE', 'User', user.id, {'old': old_values, 'new': snapshot(user)}, object_name=user.email)
    return Response(UserSerializer(user).data)


def _set_active(request, pk, active):
    user = get_object_or_404(User, pk=pk)
    old_values = snapshot(user)
    user.is_active = active
    user.save(update_fields=['is_active', 'updated_at'])
    create_audit_log(request, 'UPDATE', 'User', user.id, {'old': old_values, 'new': snapshot(user)}, object_name=user.email)
    logger.info(f"User {user.email} {'activated' if active else 'deactivated'} by {request.user.email}")
    return Response(UserSerializer(user).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdmin])
def user_activate(request, pk):
    return _set_active(request, pk, True)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdmin])
def user_deactivate(request, pk):
    return _set_active(request, pk, False)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdmin])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.all().select_related('user')
    queryset = AuditLogFilter(request.query_params, queryset=queryset).qs
    return paginate(request, queryset.order_by('-created_at'), AuditLogSerializer, default_limit=50)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdmin])
def audit_log_detail(request, pk):
    audit_log = get_object_or_404(AuditLog, pk=pk)
    return Response(AuditLogSerializer(audit_log).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminOrManager])
def audit_log_entity_history(request, model_name, object_id):
    """History of a single entity"""
    queryset = AuditLog.objects.filter(
        model_name__iexact=model_name, object_id=str(object_id)
    ).select_related('user').order_by('-created_at')
    return Response(AuditLogSerializer(queryset, many=True).data)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def ping(request):
    """Health check"""
    return Response({'status': 'ok', 'timestamp': timezone.now().isoformat()})
