"""Settings for the desktop client, persisted as JSON."""

import os
import json
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = os.path.join(os.path.expanduser('~'), '.config', 'timely', 'settings.json')

DEFAULTS: Dict[str, Any] = {
    'server_url': 'http://localhost:3000',
    'password': '',
    'palette': 'light',
    'verify_tls': True,
}


class Config:
    """Configuration manager for the desktop client.

    Loaded once at construction and written back whenever a property is
    set. The GUI receives its instance explicitly.
    """

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file or DEFAULT_CONFIG_FILE
        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from file."""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r') as f:
                    self._config = json.load(f)
            except (OSError, ValueError):
                # corrupted file: fall back to defaults
                logger.warning('could not read %s, using defaults', self.config_file)
                self._config = {}
        else:
            self._config = dict(DEFAULTS)
            self.save()

    def save(self) -> None:
        """Save configuration to file."""
        os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
        with open(self.config_file, 'w') as f:
            json.dump(self._config, f, indent=2)

    def _get(self, key: str):
        return self._config.get(key, DEFAULTS[key])

    def _set(self, key: str, value) -> None:
        self._config[key] = value
        self.save()

    @property
    def server_url(self) -> str:
        return self._get('server_url').rstrip('/')

    @server_url.setter
    def server_url(self, value: str):
        self._set('server_url', value.strip())

    @property
    def password(self) -> str:
        return self._get('password')

    @password.setter
    def password(self, value: str):
        self._set('password', value)

    @property
    def palette(self) -> str:
        return self._get('palette')

    @palette.setter
    def palette(self, value: str):
        self._set('palette', value)

    @property
    def verify_tls(self) -> bool:
        return bool(self._get('verify_tls'))

    @verify_tls.setter
    def verify_tls(self, value: bool):
        self._set('verify_tls', bool(value))
