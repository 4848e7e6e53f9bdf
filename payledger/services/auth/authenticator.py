"""
Sender Verification

The biometric sign-in flow is an opaque capability to the ledger: given a
user id, it answers whether that user is verified right now. No
cryptographic protocol lives here.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional


class AuthenticationError(Exception):
    """The verification service could not be reached or answered badly."""
    pass


class Authenticator(ABC):
    """Capability that confirms a user before money leaves their account."""

    @abstractmethod
    async def verify(self, user_id: str) -> bool:
        """
        Verify a user.

        Returns:
            True if the user is verified

        Raises:
            AuthenticationError: If verification could not be performed
        """
        pass


class MockBiometricAuthenticator(Authenticator):
    """
    Stand-in for the remote WebAuthn verification service.

    Verifies everyone, or only `allowed_user_ids` when given.
    """

    def __init__(self, allowed_user_ids: Optional[Iterable[str]] = None):
        self._allowed = set(allowed_user_ids) if allowed_user_ids is not None else None

    async def verify(self, user_id: str) -> bool:
        if not user_id:
            return False
        if self._allowed is None:
            return True
        return user_id in self._allowed
