from .auth import (  # noqa: F401
    AuthSession,
    AuthUser,
    ProfileDetails,
    SignInResult,
    SignUpData,
    SignUpResponse,
    SignUpResult,
)
from .common import AuthEvent, Tier, UserStatus  # noqa: F401
