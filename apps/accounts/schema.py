from drf_spectacular.extensions import OpenApiAuthenticationExtension
from .authentication import BearerJWTAuthentication


class BearerJWTAuthenticationExtension(OpenApiAuthenticationExtension):
    target_class = BearerJWTAuthentication
    name = 'bearerAuth'  # This is the name that will appear in the OpenAPI schema

    def get_security_definition(self, auto_schema):
        return {
            'type': 'http',
            'scheme': 'bearer',
            'bearerFormat': 'JWT',
            'description': 'HS256 JWT issued by /login, /verify-otp or /auth/google/login',
        }
