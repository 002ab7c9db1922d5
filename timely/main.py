from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional
import datetime as dt
import logging
import sys
import time

from fastapi import APIRouter, Body, Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError

from .auth import AUTH_COOKIE, SharedPassword, cookie_authenticated, require_password
from .config import Settings
from .db import TaskStore, init_db, make_engine
from .errors import AuthenticationFailed, CycleError, NotFound, StorageInconsistency
from .hierarchy import build_hierarchy
from .models import TaskCreate, TaskRead, TaskUpdate
from .utils import parse_date

logger = logging.getLogger(__name__)
# Ensure INFO-level messages from the package appear on the server console
# when no handlers are configured.
_pkg_logger = logging.getLogger('timely')
if not _pkg_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s')
    handler.setFormatter(formatter)
    _pkg_logger.addHandler(handler)

TEMPLATES = Jinja2Templates(directory=str(Path(__file__).parent / 'templates'))


def get_store(request: Request) -> TaskStore:
    return request.app.state.store


def date_range(date_less: Optional[str] = None, date_more: Optional[str] = None):
    """Query parameters bounding the listed tasks' dates (inclusive)."""
    try:
        return parse_date(date_less), parse_date(date_more)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


api = APIRouter(dependencies=[Depends(require_password)])
web = APIRouter()


@api.get('/todos', response_model=List[TaskRead])
async def get_todos(dates=Depends(date_range), store: TaskStore = Depends(get_store)):
    date_less, date_more = dates
    return await store.list_tasks(date_less, date_more)


@api.post('/todos', response_model=TaskRead)
async def create_todo(payload: TaskCreate, store: TaskStore = Depends(get_store)):
    return await store.create_task(payload)


@api.post('/todos/toggle', response_model=bool)
async def toggle_todo(todo_id: int = Body(...), store: TaskStore = Depends(get_store)):
    """Toggle a todo; its whole subtree takes the todo's new state."""
    return await store.toggle_subtree(todo_id)


@api.delete('/todos', response_model=List[TaskRead])
async def delete_todo(todo_id: int = Body(...), dates=Depends(date_range), store: TaskStore = Depends(get_store)):
    """Delete a todo and its descendants, answering with the remaining list."""
    date_less, date_more = dates
    _ok, remaining = await store.delete_subtree(todo_id, date_less, date_more)
    return remaining


@api.get('/todos/hierarchy')
async def get_todo_hierarchy(dates=Depends(date_range), store: TaskStore = Depends(get_store)):
    date_less, date_more = dates
    tasks = await store.list_tasks(date_less, date_more)
    return [node.to_dict() for node in build_hierarchy(tasks)]


@api.get('/todos/{todo_id}', response_model=TaskRead)
async def get_todo(todo_id: int, store: TaskStore = Depends(get_store)):
    return await store.get_task(todo_id)


@api.patch('/todos/{todo_id}', response_model=TaskRead)
async def update_todo(todo_id: int, payload: TaskUpdate, store: TaskStore = Depends(get_store)):
    return await store.update_task(todo_id, payload)


def _index_url(request: Request) -> str:
    return request.app.state.settings.base_path or '/'


@web.get('/', response_class=HTMLResponse)
async def web_index(request: Request, dates=Depends(date_range), store: TaskStore = Depends(get_store)):
    """Login form for anonymous visitors, the nested todo list otherwise."""
    authenticated = cookie_authenticated(request)
    date_less, date_more = dates
    todos = []
    if authenticated:
        todos = build_hierarchy(await store.list_tasks(date_less, date_more))
    return TEMPLATES.TemplateResponse(request, 'index.html', {
        'authenticated': authenticated,
        'todos': todos,
        'base_path': request.app.state.settings.base_path,
        'date_less': date_less,
        'date_more': date_more,
    })


@web.post('/login')
async def login(request: Request, password: str = Form(...)):
    resp = RedirectResponse(_index_url(request), status_code=303)
    if request.app.state.credential.verify(password):
        # page scripts read nothing from it, but they rely on the browser
        # sending it with fetch() calls to the API
        resp.set_cookie(AUTH_COOKIE, password, path='/', httponly=False, samesite='lax')
    else:
        logger.info('web login failed')
    return resp


@web.get('/logout')
async def logout(request: Request):
    resp = RedirectResponse(_index_url(request), status_code=303)
    resp.delete_cookie(AUTH_COOKIE, path='/')
    return resp


async def _auth_failed(request: Request, exc: AuthenticationFailed):
    return PlainTextResponse(str(exc), status_code=401)


async def _not_found(request: Request, exc: NotFound):
    return PlainTextResponse(str(exc), status_code=404)


async def _cycle(request: Request, exc: CycleError):
    return PlainTextResponse(str(exc), status_code=409)


async def _storage_error(request: Request, exc: Exception):
    logger.exception('storage error on %s %s: %s', request.method, request.url.path, exc, exc_info=exc)
    return PlainTextResponse(str(exc), status_code=500)


def _make_lifespan(store: TaskStore):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(store.engine)
        logger.info('database ready')
        yield
        await store.engine.dispose()
    return lifespan


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the ASGI app. ``settings`` defaults to the environment."""
    settings = settings or Settings.from_env()
    if not settings.password:
        raise RuntimeError('PASSWORD not set; set the PASSWORD environment variable before starting the server')
    _pkg_logger.setLevel(settings.log_level)

    store = TaskStore(make_engine(settings.database_url))
    credential = SharedPassword(settings.password)
    lifespan = _make_lifespan(store)

    app = FastAPI(title='Timely', lifespan=None if settings.run_on_subpath else lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.credential = credential
    app.include_router(api)
    app.include_router(web)
    app.add_exception_handler(AuthenticationFailed, _auth_failed)
    app.add_exception_handler(NotFound, _not_found)
    app.add_exception_handler(CycleError, _cycle)
    app.add_exception_handler(StorageInconsistency, _storage_error)
    app.add_exception_handler(SQLAlchemyError, _storage_error)

    @app.middleware('http')
    async def _log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info('%s %s -> %s (%.1f ms)', request.method, request.url.path,
                    response.status_code, (time.perf_counter() - started) * 1000)
        return response

    logger.info('using database url: %s', settings.database_url)
    if not settings.run_on_subpath:
        return app
    outer = FastAPI(lifespan=lifespan)
    outer.state.settings = settings
    outer.state.store = store
    outer.state.credential = credential
    outer.mount(settings.base_path, app)
    return outer


def run() -> None:
    import uvicorn

    settings = Settings.from_env()
    logger.info('listening on http://%s%s', settings.service_url, settings.base_path)
    uvicorn.run(lambda: create_app(settings), factory=True, host=settings.host, port=settings.port)


if __name__ == '__main__':
    run()
