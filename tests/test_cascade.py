import datetime as dt

import pytest
from conftest import NO_ROWS_DELETE

import timely.db as db_mod
from timely.errors import CycleError, NotFound, StorageInconsistency
from timely.models import TaskCreate, TaskUpdate

pytestmark = pytest.mark.asyncio


async def ids(store):
    return [task.id for task in await store.list_tasks()]


async def done_map(store):
    return {task.name: task.done for task in await store.list_tasks()}


async def test_delete_root_removes_whole_chain(store, abc_tree):
    ok, remaining = await store.delete_subtree(abc_tree['A'])
    assert ok
    assert remaining == []
    assert await ids(store) == []


async def test_delete_middle_keeps_ancestor(store, abc_tree):
    ok, remaining = await store.delete_subtree(abc_tree['B'])
    assert ok
    assert [task.id for task in remaining] == [abc_tree['A']]


async def test_delete_leaf_removes_only_leaf(store, abc_tree):
    _, remaining = await store.delete_subtree(abc_tree['C'])
    assert [task.id for task in remaining] == [abc_tree['A'], abc_tree['B']]


async def test_delete_deep_and_wide_tree(store):
    root = await store.create_task(TaskCreate(name='root'))
    parent = root
    for i in range(30):
        parent = await store.create_task(TaskCreate(name=f'deep {i}', parent_id=parent.id))
    for i in range(10):
        await store.create_task(TaskCreate(name=f'wide {i}', parent_id=root.id))
    keep = await store.create_task(TaskCreate(name='keep'))

    _, remaining = await store.delete_subtree(root.id)
    assert [task.id for task in remaining] == [keep.id]


async def test_delete_missing_raises_not_found(store, abc_tree):
    with pytest.raises(NotFound):
        await store.delete_subtree(999)
    assert len(await ids(store)) == 3


async def test_delete_affecting_no_rows_is_storage_inconsistency(store, abc_tree, monkeypatch):
    monkeypatch.setattr(db_mod, 'DELETE_SUBTREE_SQL', NO_ROWS_DELETE)
    with pytest.raises(StorageInconsistency):
        await store.delete_subtree(abc_tree['A'])
    assert len(await ids(store)) == 3


async def test_delete_target_vanishing_midway_is_not_found(store, abc_tree, monkeypatch):
    # closure read first, then the rows disappear before the delete runs
    real_subtree_ids = db_mod.TaskStore._subtree_ids
    calls = []

    async def subtree_ids(self, sess, task_id):
        calls.append(task_id)
        if len(calls) == 1:
            return await real_subtree_ids(self, sess, task_id)
        return []

    monkeypatch.setattr(db_mod.TaskStore, '_subtree_ids', subtree_ids)
    monkeypatch.setattr(db_mod, 'DELETE_SUBTREE_SQL', NO_ROWS_DELETE)
    with pytest.raises(NotFound):
        await store.delete_subtree(abc_tree['A'])


async def test_delete_counts_every_row_of_the_subtree(store, abc_tree, caplog):
    caplog.set_level('INFO', logger='timely.db')
    await store.create_task(TaskCreate(name='C2', parent_id=abc_tree['B']))
    ok, remaining = await store.delete_subtree(abc_tree['B'])
    assert ok
    assert [task.name for task in remaining] == ['A']
    assert f"deleted todo id={abc_tree['B']} with 3 row(s)" in caplog.text


async def test_toggle_root_sets_whole_chain(store, abc_tree):
    assert await store.toggle_subtree(abc_tree['A']) is True
    assert await done_map(store) == {'A': True, 'B': True, 'C': True}
    assert await store.toggle_subtree(abc_tree['A']) is False
    assert await done_map(store) == {'A': False, 'B': False, 'C': False}


async def test_toggle_forces_descendants_to_match(store, abc_tree):
    # C done on its own, then A toggled on: C must stay done, not flip
    await store.toggle_subtree(abc_tree['C'])
    assert await done_map(store) == {'A': False, 'B': False, 'C': True}
    assert await store.toggle_subtree(abc_tree['A']) is True
    assert await done_map(store) == {'A': True, 'B': True, 'C': True}

    # B off alone, then A off: everything false regardless of prior state
    await store.toggle_subtree(abc_tree['B'])
    assert await done_map(store) == {'A': True, 'B': False, 'C': False}
    assert await store.toggle_subtree(abc_tree['A']) is False
    assert await done_map(store) == {'A': False, 'B': False, 'C': False}


async def test_toggle_middle_leaves_ancestor(store, abc_tree):
    assert await store.toggle_subtree(abc_tree['B']) is True
    assert await done_map(store) == {'A': False, 'B': True, 'C': True}


async def test_toggle_leaf_is_single_row(store, abc_tree):
    assert await store.toggle_subtree(abc_tree['C']) is True
    assert await done_map(store) == {'A': False, 'B': False, 'C': True}


async def test_toggle_missing_raises_not_found(store):
    with pytest.raises(NotFound):
        await store.toggle_subtree(12345)


async def test_create_assigns_id_and_not_done(store):
    task = await store.create_task(TaskCreate(name='new', description='d', date='2024-3-5'))
    assert task.id is not None
    assert task.done is False
    assert task.date == dt.date(2024, 3, 5)


async def test_create_with_missing_parent_raises(store):
    with pytest.raises(NotFound):
        await store.create_task(TaskCreate(name='orphan', parent_id=77))


async def test_update_fields(store, abc_tree):
    task = await store.update_task(abc_tree['C'], TaskUpdate(name='C2', description='more'))
    assert task.name == 'C2'
    assert task.description == 'more'
    assert task.parent_id == abc_tree['B']


async def test_update_reparent_to_root(store, abc_tree):
    task = await store.update_task(abc_tree['C'], TaskUpdate(parent_id=None))
    assert task.parent_id is None


async def test_update_rejects_cycles(store, abc_tree):
    with pytest.raises(CycleError):
        await store.update_task(abc_tree['A'], TaskUpdate(parent_id=abc_tree['C']))
    with pytest.raises(CycleError):
        await store.update_task(abc_tree['B'], TaskUpdate(parent_id=abc_tree['B']))
    # nothing changed
    assert (await store.get_task(abc_tree['A'])).parent_id is None


async def test_update_missing_parent_or_task(store, abc_tree):
    with pytest.raises(NotFound):
        await store.update_task(abc_tree['C'], TaskUpdate(parent_id=500))
    with pytest.raises(NotFound):
        await store.update_task(500, TaskUpdate(name='x'))


async def test_list_date_filters(store):
    await store.create_task(TaskCreate(name='early', date='2024-01-01'))
    await store.create_task(TaskCreate(name='mid', date='2024-02-15'))
    await store.create_task(TaskCreate(name='late', date='2024-03-31'))
    await store.create_task(TaskCreate(name='undated'))

    names = lambda tasks: [task.name for task in tasks]
    assert names(await store.list_tasks()) == ['early', 'mid', 'late', 'undated']
    assert names(await store.list_tasks(date_less=dt.date(2024, 2, 15))) == ['early', 'mid']
    assert names(await store.list_tasks(date_more=dt.date(2024, 2, 15))) == ['mid', 'late']
    assert names(await store.list_tasks(date_less=dt.date(2024, 3, 1), date_more=dt.date(2024, 1, 2))) == ['mid']
