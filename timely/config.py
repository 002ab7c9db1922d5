"""Runtime configuration for the Timely server.

Values are read from environment variables so the same code can run in
development or production without changes. A ``Settings`` instance is built
once at startup and handed to ``create_app``; nothing else reads the
environment.
"""
import os
from typing import Optional

from pydantic import BaseModel


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


DEFAULT_DATABASE_URL = 'sqlite+aiosqlite:///./timely.db'
DEFAULT_SERVICE_URL = '127.0.0.1:3000'

# Prefix used when the app is mounted under a subpath (RUN_ON_SUBPATH=1),
# e.g. behind a reverse proxy serving several tools from one host.
SUBPATH_PREFIX = '/timely'


class Settings(BaseModel):
    database_url: str = DEFAULT_DATABASE_URL
    # The shared secret. The server refuses to start without one.
    password: Optional[str] = None
    # host:port the server binds to
    service_url: str = DEFAULT_SERVICE_URL
    run_on_subpath: bool = False
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            database_url=os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL),
            password=os.getenv('PASSWORD') or None,
            service_url=os.getenv('SERVICE_URL', DEFAULT_SERVICE_URL),
            run_on_subpath=_trueish(os.getenv('RUN_ON_SUBPATH')),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )

    @property
    def host(self) -> str:
        host, _, _ = self.service_url.rpartition(':')
        return host or '127.0.0.1'

    @property
    def port(self) -> int:
        _, _, port = self.service_url.rpartition(':')
        try:
            return int(port)
        except ValueError:
            return 3000

    @property
    def base_path(self) -> str:
        return SUBPATH_PREFIX if self.run_on_subpath else ''
