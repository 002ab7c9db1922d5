from typing import Optional

from fastapi import Request
from passlib.context import CryptContext
import logging

from .errors import AuthenticationFailed

logger = logging.getLogger(__name__)

AUTH_COOKIE = 'auth'
PASSWORD_PARAM = 'password'

# pure-Python scheme so tests and small deployments need no C extensions
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class SharedPassword:
    """The single credential guarding every endpoint.

    Only a hash is kept in memory; each request's candidate is verified
    against it. There is no session store: the credential travels with
    every request as the ``password`` query parameter or the ``auth`` cookie.
    """

    def __init__(self, password: str):
        self._hash = pwd_context.hash(password)

    def verify(self, candidate: Optional[str]) -> bool:
        if not candidate:
            return False
        try:
            return pwd_context.verify(candidate, self._hash)
        except ValueError:
            logger.info('rejected malformed credential')
            return False


def extract_provided(request: Request) -> Optional[str]:
    """Credential presented by the request: query parameter first, then cookie."""
    provided = request.query_params.get(PASSWORD_PARAM)
    if provided is not None:
        return provided
    return request.cookies.get(AUTH_COOKIE)


def is_authenticated(request: Request) -> bool:
    return request.app.state.credential.verify(extract_provided(request))


async def require_password(request: Request) -> None:
    """Dependency for API routes: raise AuthenticationFailed unless authenticated."""
    if not is_authenticated(request):
        logger.info('authentication failed for %s %s', request.method, request.url.path)
        raise AuthenticationFailed()


def cookie_authenticated(request: Request) -> bool:
    """The web page only honours the cookie, as the login form sets it."""
    return request.app.state.credential.verify(request.cookies.get(AUTH_COOKIE))
