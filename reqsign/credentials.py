"""
Credential values and their resolution.

The signer never looks at the process environment. Callers either build a
:class:`Credentials` themselves or ask :func:`resolve_credentials` to do it,
which applies the precedence: explicit argument, then environment, then fail.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .exceptions import NoCredentialsError

logger = logging.getLogger(__name__)

ACCESS_KEY_VARS = ('AWS_ACCESS_KEY_ID', 'AWS_ACCESS_KEY')
SECRET_KEY_VARS = ('AWS_SECRET_ACCESS_KEY', 'AWS_SECRET_KEY')
SESSION_TOKEN_VARS = ('AWS_SESSION_TOKEN',)
REGION_VARS = ('AWS_REGION', 'AWS_DEFAULT_REGION')


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)
    region: Optional[str] = None
    service: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.access_key_id:
            raise NoCredentialsError('access_key_id must not be empty')
        if not self.secret_access_key:
            raise NoCredentialsError('secret_access_key must not be empty')

    def with_scope(self, service: Optional[str] = None, region: Optional[str] = None) -> 'Credentials':
        """Return a copy with service and/or region replaced."""
        return dataclasses.replace(
            self,
            service=service if service is not None else self.service,
            region=region if region is not None else self.region,
        )


def _first(environ: Mapping[str, str], names) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


def from_environment(environ: Optional[Mapping[str, str]] = None) -> Credentials:
    """Build credentials from ``AWS_*`` environment variables.

    Raises NoCredentialsError when the access key or the secret key is missing.
    """
    if environ is None:
        environ = os.environ

    access_key = _first(environ, ACCESS_KEY_VARS)
    secret_key = _first(environ, SECRET_KEY_VARS)
    if not access_key or not secret_key:
        raise NoCredentialsError(
            f"Unable to locate credentials: set {ACCESS_KEY_VARS[0]} and {SECRET_KEY_VARS[0]}"
        )

    logger.debug('Found credentials in environment variables')
    return Credentials(
        access_key_id=access_key,
        secret_access_key=secret_key,
        session_token=_first(environ, SESSION_TOKEN_VARS),
        region=_first(environ, REGION_VARS),
    )


def resolve_credentials(
        credentials: Optional[Credentials] = None,
        environ: Optional[Mapping[str, str]] = None
) -> Credentials:
    if credentials is not None:
        return credentials
    return from_environment(environ)
