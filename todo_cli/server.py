"""Local web UI: a JSON API over the project's todo store plus one static page.

Every request loads the store, applies its change and writes the whole file
back. Requests are not serialized, so two writers racing on the same project
end up with whichever saved last.
"""

from __future__ import annotations

import logging
import os
from importlib import resources
from typing import Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from .errors import InvalidPriorityError, InvalidStatusError, StoreError, TodoError, TodoNotFoundError, ValidationError
from .models import Priority, Status, Todo, TodoMeta
from .storage import delete_at, find_by_id, generate_id, load_todos, normalize_paths, save_todos

logger = logging.getLogger('todo_cli')


class TodoCreate(BaseModel):
    text: str = ""
    path: Optional[str] = None
    priority: str = ""


class TodoUpdate(BaseModel):
    text: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    path: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _index_html() -> str:
    return resources.files("todo_cli").joinpath("static/index.html").read_text(encoding="utf-8")


def build_router(root: str) -> APIRouter:
    router = APIRouter(prefix="/api")

    def locate(todos, todo_id: str):
        todo, pos = find_by_id(todos, todo_id)
        if todo is None:
            raise TodoNotFoundError(todo_id)
        return todo, pos

    @router.get("/todos")
    def list_todos():
        todos = load_todos(root)
        return {"todos": [t.to_dict() for t in todos], "count": len(todos)}

    @router.post("/todos")
    def create_todo(req: TodoCreate):
        text = req.text.strip()
        if not text:
            raise ValidationError("Todo text is required")
        priority = Priority.parse(req.priority) if req.priority else Priority.MEDIUM

        todos = load_todos(root)
        todo = Todo.create(generate_id(), text)
        todo.priority = priority
        todo.meta = TodoMeta(source="ui")
        if req.path:
            todo.context.paths = normalize_paths([req.path])
        todos.append(todo)
        save_todos(root, todos)
        logger.info("UI added %s", todo.id)
        return {"success": True, "todo": todo.to_dict()}

    @router.get("/todos/{todo_id}")
    def get_todo(todo_id: str):
        todo, _ = locate(load_todos(root), todo_id)
        return {"todo": todo.to_dict()}

    @router.put("/todos/{todo_id}")
    def update_todo(todo_id: str, req: TodoUpdate):
        todos = load_todos(root)
        todo, _ = locate(todos, todo_id)
        if req.text:
            todo.set_text(req.text)
        if req.status:
            todo.set_status(Status.parse(req.status))
        if req.priority:
            todo.set_priority(Priority.parse(req.priority))
        if req.path is not None:
            todo.set_paths(normalize_paths([req.path]) if req.path else [])
        todo.touch()
        save_todos(root, todos)
        return {"success": True, "todo": todo.to_dict()}

    @router.delete("/todos/{todo_id}")
    def delete_todo(todo_id: str):
        todos = load_todos(root)
        _, pos = locate(todos, todo_id)
        save_todos(root, delete_at(todos, pos))
        logger.info("UI deleted %s", todo_id)
        return {"success": True}

    @router.post("/todos/{todo_id}/toggle")
    def toggle_todo(todo_id: str):
        todos = load_todos(root)
        todo, _ = locate(todos, todo_id)
        todo.toggle()
        save_todos(root, todos)
        return {"success": True, "todo": todo.to_dict()}

    @router.get("/project")
    def project_info():
        return {"name": os.path.basename(root) or "Project", "path": root}

    return router


def create_app(root: str) -> FastAPI:
    app = FastAPI(title="todo", docs_url=None, redoc_url=None)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(TodoNotFoundError)
    async def _not_found(request: Request, exc: TodoNotFoundError):
        return _error(404, "Todo not found")

    @app.exception_handler(InvalidPriorityError)
    async def _bad_priority(request: Request, exc: InvalidPriorityError):
        return _error(400, "Invalid priority")

    @app.exception_handler(InvalidStatusError)
    async def _bad_status(request: Request, exc: InvalidStatusError):
        return _error(400, "Invalid status")

    @app.exception_handler(ValidationError)
    async def _invalid(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _bad_body(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request body")

    @app.exception_handler(StoreError)
    async def _store_failed(request: Request, exc: StoreError):
        logger.error("Store error while serving %s: %s", request.url.path, exc)
        return _error(500, str(exc))

    @app.exception_handler(TodoError)
    async def _todo_error(request: Request, exc: TodoError):
        return _error(400, str(exc))

    @app.get("/", response_class=HTMLResponse)
    def index():
        return _index_html()

    app.include_router(build_router(root))
    return app


def serve(root: str, host: str = "127.0.0.1", port: int = 8080, log_level: str = "error") -> None:
    """Run the UI until interrupted."""
    logger.info("Serving %s on http://%s:%d", root, host, port)
    uvicorn.run(create_app(root), host=host, port=port, log_level=log_level.lower())
