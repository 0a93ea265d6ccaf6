"""
External identity provider.

Credentials never touch this service's database: sign-up and password
sign-in are delegated to the provider, which returns the user id and email
the local session token is minted from.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from fastapi import Depends
from supabase import AuthError, Client

from script_labs.database.supabase_client import get_supabase

logger = logging.getLogger(__name__)


@dataclass
class SignUpResult:
    user_id: Optional[str]
    email: Optional[str]
    has_session: bool


@dataclass
class SignInResult:
    user_id: str
    email: Optional[str]


class IdentityProviderError(Exception):
    """The provider rejected the request (bad credentials, existing user, weak password...)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class IdentityProvider(Protocol):
    def sign_up(self, email: str, password: str) -> SignUpResult:
        ...

    def sign_in_with_password(self, email: str, password: str) -> SignInResult:
        ...


class SupabaseIdentityProvider:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def sign_up(self, email: str, password: str) -> SignUpResult:
        try:
            auth_response = self.supabase.auth.sign_up({
                "email": email,
                "password": password,
            })
        except AuthError as e:
            logger.warning(f"Sign-up rejected by identity provider: {e.code}")
            raise IdentityProviderError(e.message, e.code) from e

        user = auth_response.user
        return SignUpResult(
            user_id=user.id if user else None,
            email=user.email if user else None,
            has_session=auth_response.session is not None,
        )

    def sign_in_with_password(self, email: str, password: str) -> SignInResult:
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": email,
                "password": password
            })
        except AuthError as e:
            logger.warning(f"Sign-in rejected by identity provider: {e.code}")
            raise IdentityProviderError(e.message, e.code) from e

        if not auth_response.user or not auth_response.session:
            raise IdentityProviderError("Invalid login credentials")

        return SignInResult(
            user_id=auth_response.user.id,
            email=auth_response.user.email or email,
        )


def get_identity_provider(supabase: Client = Depends(get_supabase)) -> IdentityProvider:
    return SupabaseIdentityProvider(supabase)
