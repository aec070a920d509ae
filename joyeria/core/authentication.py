"""
JWT authentication tiers.

``JWTTokenAuthentication`` only verifies the token (signature, expiry,
issuer, audience) and builds the user from its claims. The strict variant
reloads the user to reject disabled accounts and tokens issued before the
last password change.
"""
import logging

from rest_framework_simplejwt.authentication import JWTAuthentication, JWTStatelessUserAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed

logger = logging.getLogger(__name__)


class JWTTokenAuthentication(JWTStatelessUserAuthentication):
    """Verify-only bearer authentication; no database access"""
    www_authenticate_realm = 'api'


class StrictJWTAuthentication(JWTAuthentication):
    """Bearer authentication that re-checks the user row on every request"""
    www_authenticate_realm = 'api'

    def get_user(self, validated_token):
        user = super().get_user(validated_token)

        changed_at = user.password_changed_at
        issued_at = validated_token.get('iat')
        if changed_at is not None and issued_at is not None:
            if int(issued_at) < int(changed_at.timestamp()):
                logger.info(f"Rejected token for user {user.pk}: issued before password change")
                raise AuthenticationFailed('Token revocado', code='token_revoked')
        return user


class QueryParamJWTAuthentication(JWTTokenAuthentication):
    """
    Accepts ``?token=<jwt>`` in addition to the Authorization header.
    EventSource clients cannot send custom headers.
    """

    def authenticate(self, request):
        if self.get_header(request) is not None:
            return super().authenticate(request)

        raw_token = request.query_params.get('token')
        if not raw_token:
            return None
        validated_token = self.get_validated_token(raw_token.encode())
        return self.get_user(validated_token), validated_token
