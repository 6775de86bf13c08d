from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from rest_framework_simplejwt.tokens import AccessToken


class BearerJWTAuthentication(JWTAuthentication):
    """
    ``Authorization: Bearer <jwt>`` authentication.

    On top of simplejwt's checks (header shape, HS256 signature, expiry,
    ``user_id`` resolving to an active user) soft-deleted accounts are
    rejected as if they did not exist.
    """

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        if user.deleted_at is not None:
            raise AuthenticationFailed("User not found", code="user_not_found")
        return user


def issue_token(user) -> str:
    token = AccessToken.for_user(user)
    # simplejwt stringifies the id claim; clients expect the numeric id
    token["user_id"] = user.pk
    return str(token)
