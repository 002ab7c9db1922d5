"""Error kinds shared by the server and the desktop client.

None of these are retried; each one ends the request or client call in
which it was raised.
"""


class TimelyError(Exception):
    """Base class for every error raised by Timely code."""


class AuthenticationFailed(TimelyError):
    def __init__(self, message: str = 'Failed authentication'):
        super().__init__(message)


class NotFound(TimelyError):
    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f'todo {task_id} not found')


class StorageInconsistency(TimelyError):
    """A cascade affected fewer rows than its precondition implied."""


class CycleError(TimelyError):
    """An update would make a task its own ancestor."""

    def __init__(self, task_id: int, parent_id: int):
        self.task_id = task_id
        self.parent_id = parent_id
        super().__init__(f'todo {parent_id} is {task_id} or one of its descendants')


class TransportFailure(TimelyError):
    """A client call failed or the server answered with an unexpected body."""
