"""Client for the Timely JSON API."""

import datetime as dt
import logging
from typing import List, Optional, Tuple

import requests
import urllib3
from pydantic import ValidationError

from timely.errors import AuthenticationFailed, TransportFailure
from timely.models import TaskRead

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class TimelyClient:
    """Thin wrapper over the four API calls.

    Every failure surfaces as TransportFailure (or AuthenticationFailed on a
    401). Nothing is retried.
    """

    def __init__(self, base_url: str, password: str, verify: bool = True,
                 session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = verify
        if not verify:
            # self-signed certs on a home server
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @classmethod
    def from_config(cls, config) -> 'TimelyClient':
        return cls(config.server_url, config.password, verify=config.verify_tls)

    def _request(self, method: str, path: str, params: Optional[dict] = None, json=None):
        url = f"{self.base_url}{path}"
        query = {'password': self.password}
        query.update({k: v for k, v in (params or {}).items() if v is not None})
        try:
            response = self.session.request(method, url, params=query, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning('%s %s failed: %s', method, path, e)
            raise TransportFailure(f'could not reach {self.base_url}: {e}') from e
        if response.status_code == 401:
            raise AuthenticationFailed(response.text or 'Failed authentication')
        if response.status_code >= 400:
            raise TransportFailure(f'{method} {path} returned {response.status_code}: {response.text}')
        try:
            return response.json()
        except ValueError as e:
            raise TransportFailure(f'{method} {path} returned a non-JSON body') from e

    @staticmethod
    def _tasks(data) -> List[TaskRead]:
        if not isinstance(data, list):
            raise TransportFailure(f'expected a list of todos, got {type(data).__name__}')
        try:
            return [TaskRead.model_validate(item) for item in data]
        except ValidationError as e:
            raise TransportFailure(f'malformed todo in response: {e}') from e

    def load(self, date_less: Optional[dt.date] = None, date_more: Optional[dt.date] = None) -> List[TaskRead]:
        params = {
            'date_less': date_less.isoformat() if date_less else None,
            'date_more': date_more.isoformat() if date_more else None,
        }
        return self._tasks(self._request('GET', '/todos', params=params))

    def create(self, name: str, description: Optional[str] = None,
               parent_id: Optional[int] = None, date: Optional[dt.date] = None) -> TaskRead:
        payload = {'name': name, 'description': description, 'parent_id': parent_id,
                   'date': date.isoformat() if date else None}
        data = self._request('POST', '/todos', json=payload)
        try:
            return TaskRead.model_validate(data)
        except ValidationError as e:
            raise TransportFailure(f'malformed todo in response: {e}') from e

    def delete(self, task_id: int) -> List[TaskRead]:
        """Delete a todo with its subtree; returns the remaining todos."""
        return self._tasks(self._request('DELETE', '/todos', json=task_id))

    def toggle(self, task_id: int) -> Tuple[int, bool]:
        """Toggle a todo; returns ``(task_id, new_state)`` of the target."""
        data = self._request('POST', '/todos/toggle', json=task_id)
        if not isinstance(data, bool):
            raise TransportFailure(f'expected a boolean, got {data!r}')
        return task_id, data
