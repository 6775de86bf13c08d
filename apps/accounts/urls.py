from django.urls import path
from .views import (
    ForgotPasswordView,
    GoogleLoginView,
    LoginView,
    ProfileView,
    ResendOTPView,
    ResetPasswordView,
    SignupView,
    VerifyOTPView,
)


urlpatterns = [
    path('signup', SignupView.as_view(), name='signup'),
    path('login', LoginView.as_view(), name='login'),
    path('verify-otp', VerifyOTPView.as_view(), name='verify_otp'),
    path('resend-otp', ResendOTPView.as_view(), name='resend_otp'),
    path('forgot-password', ForgotPasswordView.as_view(), name='forgot_password'),
    path('reset-password', ResetPasswordView.as_view(), name='reset_password'),
    path('auth/google/login', GoogleLoginView.as_view(), name='google_login'),
    path('profile', ProfileView.as_view(), name='profile'),
]
