from django.conf import settings
from rest_framework_simplejwt.tokens import AccessToken, Token


class MfaToken(Token):
    """Short-lived token proving the password step of an MFA login"""
    token_type = 'mfa'
    lifetime = settings.MFA_TOKEN_LIFETIME


def issue_access_token(user):
    """Access token carrying the claims the API authorizes against"""
    token = AccessToken.for_user(user)
    token['role'] = user.role_name
    token['username'] = user.username
    token.set_iat()
    return token


def issue_mfa_token(user):
    token = MfaToken.for_user(user)
    token['purpose'] = 'mfa'
    return token
