from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import bindparam, text, event
from sqlalchemy.pool import NullPool

import datetime as dt
import logging
from typing import List, Optional, Tuple

from .errors import CycleError, NotFound, StorageInconsistency
from .models import Task, TaskCreate, TaskUpdate

logger = logging.getLogger(__name__)


# Descendant closure of :id, the target included. UNION (not UNION ALL) so a
# corrupt cyclic table cannot make the recursion run forever.
_SUBTREE_CTE = """
    WITH RECURSIVE todo_hierarchy(id) AS (
        SELECT id FROM todos WHERE id = :id
        UNION
        SELECT t.id FROM todos t
        INNER JOIN todo_hierarchy th ON t.parent_id = th.id
    )
"""

SUBTREE_IDS_SQL = text(_SUBTREE_CTE + "SELECT id FROM todo_hierarchy")

# Writes take the closure collected by SUBTREE_IDS_SQL. sqlite3 before 3.12
# reports rowcount -1 for statements that start with WITH.
DELETE_SUBTREE_SQL = text(
    "DELETE FROM todos WHERE id IN :ids"
).bindparams(bindparam('ids', expanding=True))

TOGGLE_TARGET_SQL = text("UPDATE todos SET done = NOT done WHERE id = :id")

SET_DONE_SQL = text(
    "UPDATE todos SET done = :done WHERE id IN :ids"
).bindparams(bindparam('ids', expanding=True))


def _is_sqlite(url: str) -> bool:
    return url.startswith('sqlite')


def make_engine(database_url: str) -> AsyncEngine:
    if _is_sqlite(database_url):
        # SQLite keeps one writer anyway; NullPool avoids connections held
        # across event loops in tests.
        engine = create_async_engine(database_url, echo=False, future=True, poolclass=NullPool)

        @event.listens_for(engine.sync_engine, 'connect')
        def _sqlite_fk_pragma(dbapi_con, con_record):
            cur = dbapi_con.cursor()
            cur.execute('PRAGMA foreign_keys=ON')
            cur.close()

        return engine
    return create_async_engine(database_url, echo=False, future=True, pool_pre_ping=True)


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


class TaskStore:
    """Persistence for tasks.

    Every method opens its own session. Cascades run inside a single
    transaction so concurrent readers see either none or all of the cascade.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def list_tasks(self, date_less: Optional[dt.date] = None, date_more: Optional[dt.date] = None) -> List[Task]:
        """All tasks ordered by id, optionally limited to an inclusive date range."""
        async with self.async_session() as sess:
            return await self._list(sess, date_less, date_more)

    async def _list(self, sess, date_less, date_more) -> List[Task]:
        q = select(Task)
        if date_less is not None:
            q = q.where(Task.date <= date_less)
        if date_more is not None:
            q = q.where(Task.date >= date_more)
        res = await sess.exec(q.order_by(Task.id))
        return list(res.all())

    async def get_task(self, task_id: int) -> Task:
        async with self.async_session() as sess:
            task = await sess.get(Task, task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    async def create_task(self, data: TaskCreate) -> Task:
        async with self.async_session() as sess:
            if data.parent_id is not None and await sess.get(Task, data.parent_id) is None:
                raise NotFound(data.parent_id)
            task = Task(**data.model_dump())
            sess.add(task)
            await sess.commit()
            await sess.refresh(task)
        logger.info('created todo id=%s parent_id=%s', task.id, task.parent_id)
        return task

    async def update_task(self, task_id: int, changes: TaskUpdate) -> Task:
        """Apply a partial edit. Re-parenting under its own subtree is refused."""
        values = changes.model_dump(exclude_unset=True)
        async with self.async_session() as sess:
            async with sess.begin():
                task = await sess.get(Task, task_id)
                if task is None:
                    raise NotFound(task_id)
                parent_id = values.get('parent_id')
                if parent_id is not None:
                    if await sess.get(Task, parent_id) is None:
                        raise NotFound(parent_id)
                    if parent_id in await self._subtree_ids(sess, task_id):
                        raise CycleError(task_id, parent_id)
                for key, value in values.items():
                    setattr(task, key, value)
                sess.add(task)
            await sess.refresh(task)
        logger.info('updated todo id=%s fields=%s', task_id, sorted(values))
        return task

    async def delete_subtree(
        self,
        task_id: int,
        date_less: Optional[dt.date] = None,
        date_more: Optional[dt.date] = None,
    ) -> Tuple[bool, List[Task]]:
        """Delete a task and all of its descendants.

        Returns ``(True, remaining_tasks)``. Raises NotFound when the target
        does not exist (or was removed concurrently) and StorageInconsistency
        when the delete removed nothing although the target is still there.
        """
        async with self.async_session() as sess:
            async with sess.begin():
                subtree = await self._subtree_ids(sess, task_id)
                if not subtree:
                    raise NotFound(task_id)
                res = await sess.execute(DELETE_SUBTREE_SQL, {'ids': subtree})
                if res.rowcount < 1:
                    # gone since the closure was read: someone else deleted it
                    if await self._subtree_ids(sess, task_id) == []:
                        raise NotFound(task_id)
                    raise StorageInconsistency(f'deleting todo {task_id} affected no rows')
            logger.info('deleted todo id=%s with %s row(s)', task_id, res.rowcount)
            remaining = await self._list(sess, date_less, date_more)
        return True, remaining

    async def toggle_subtree(self, task_id: int) -> bool:
        """Flip a task's done flag and force every descendant to match it."""
        async with self.async_session() as sess:
            async with sess.begin():
                res = await sess.execute(TOGGLE_TARGET_SQL, {'id': task_id})
                if not res.rowcount:
                    raise NotFound(task_id)
                row = (await sess.execute(text('SELECT done FROM todos WHERE id = :id'), {'id': task_id})).first()
                if row is None:
                    raise StorageInconsistency(f'todo {task_id} vanished while toggling')
                done = bool(row[0])
                descendants = [i for i in await self._subtree_ids(sess, task_id) if i != task_id]
                if descendants:
                    await sess.execute(SET_DONE_SQL, {'ids': descendants, 'done': done})
            logger.info('toggled todo id=%s done=%s descendants=%s', task_id, done, len(descendants))
        return done

    async def _subtree_ids(self, sess, task_id: int) -> List[int]:
        """Ids of ``task_id`` and all its descendants; empty when it is missing."""
        res = await sess.execute(SUBTREE_IDS_SQL, {'id': task_id})
        return [row[0] for row in res.fetchall()]
