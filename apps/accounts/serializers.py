from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers


User = get_user_model()


def _validate_password(value, user=None):
    try:
        validate_password(value, user=user)
    except DjangoValidationError as exc:
        raise serializers.ValidationError(list(exc.messages))
    return value


class SignupSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=150, default="")
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=150, default="")
    daily_commitment = serializers.IntegerField(min_value=1)
    learning_goal = serializers.CharField()
    age = serializers.IntegerField(required=False, min_value=1, allow_null=True)
    level = serializers.CharField(required=False, allow_blank=True, max_length=50)

    def validate(self, attrs):
        candidate = User(
            email=attrs["email"],
            first_name=attrs.get("first_name", ""),
            last_name=attrs.get("last_name", ""),
        )
        _validate_password(attrs["password"], user=candidate)
        return attrs


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class EmailSerializer(serializers.Serializer):
    email = serializers.EmailField()


class VerifyOTPSerializer(serializers.Serializer):
    email = serializers.EmailField()
    otp = serializers.CharField(max_length=6)


class ResetPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()
    otp = serializers.CharField(max_length=6)
    password = serializers.CharField(write_only=True)

    def validate_password(self, value):
        return _validate_password(value)


class GoogleLoginSerializer(serializers.Serializer):
    token = serializers.CharField()


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name']


class AuthPayloadSerializer(serializers.Serializer):
    token = serializers.CharField()
    user = UserSummarySerializer()


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'age', 'level', 'background',
            'preferred_language', 'interests', 'country', 'learning_goal',
            'daily_commitment', 'is_verified', 'auth_provider',
        ]
        read_only_fields = ['id', 'email', 'is_verified', 'auth_provider']
        extra_kwargs = {
            'daily_commitment': {'min_value': 1},
            'age': {'min_value': 1},
        }
