import logging
from typing import Any, Dict

from starlette.concurrency import run_in_threadpool

from script_labs.core.errors import AppError
from script_labs.core.security import create_access_token
from script_labs.modules.auth.provider import IdentityProvider, IdentityProviderError
from script_labs.modules.auth.schemas import AuthCredentials

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, provider: IdentityProvider):
        self.provider = provider

    async def register(self, credentials: AuthCredentials) -> Dict[str, Any]:
        """Create the account with the identity provider"""
        try:
            result = await run_in_threadpool(
                self.provider.sign_up, credentials.email, credentials.password
            )
        except IdentityProviderError as e:
            raise AppError(e.message, 400, "REGISTRATION_FAILED")
        except Exception as e:
            logger.error("Registration endpoint error: %s", e)
            raise AppError("Registration endpoint error", 500) from e

        return {
            "user": {"id": result.user_id, "email": result.email},
            "requiresConfirmation": not result.has_session,
        }

    async def login(self, credentials: AuthCredentials) -> Dict[str, Any]:
        """Check the password with the identity provider and mint a session token"""
        try:
            result = await run_in_threadpool(
                self.provider.sign_in_with_password, credentials.email, credentials.password
            )
            token = create_access_token(result.user_id, result.email)
        except IdentityProviderError as e:
            raise AppError(e.message, 401, "LOGIN_FAILED")
        except Exception as e:
            logger.error("Login endpoint error: %s", e)
            raise AppError("Login endpoint error", 500) from e

        return {
            "token": token,
            "user": {"id": result.user_id, "email": result.email},
        }
