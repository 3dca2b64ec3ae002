import logging

from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed

logger = logging.getLogger('backend.core')


class BearerJWTAuthentication(JWTAuthentication):
    """
    JWT authentication that rejects a present but malformed Authorization
    header instead of silently treating the request as anonymous.
    """

    def authenticate(self, request):
        header = self.get_header(request)
        if header is None:
            return None

        raw_token = self.get_raw_token(header)
        if raw_token is None:
            logger.warning(f"Rejected Authorization header without a Bearer token on {request.path}")
            raise AuthenticationFailed('Authorization header must be: Bearer <token>', code='bad_authorization_header')

        validated_token = self.get_validated_token(raw_token)
        return self.get_user(validated_token), validated_token
