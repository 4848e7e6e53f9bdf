"""Sender verification package."""

from payledger.services.auth.authenticator import (
    AuthenticationError,
    Authenticator,
    MockBiometricAuthenticator,
)

__all__ = [
    "AuthenticationError",
    "Authenticator",
    "MockBiometricAuthenticator",
]
