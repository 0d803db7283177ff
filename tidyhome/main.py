import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from . import categories, dashboard, households, tasks, users
from .access import RequestContext, get_context, visible_to
from .auth import get_current_user, login_user, logout_user, require_user
from .config import (
    HOST,
    LOG_LEVEL,
    PORT,
    SESSION_COOKIE,
    SESSION_MAX_AGE,
    SESSION_SECRET,
    TASK_PAGE_LIMIT,
    UPCOMING_LIMIT,
)
from .db import get_session, init_db
from .errors import ServiceError, Unauthorized
from .logging_setup import setup_logging
from .models import Category, HouseholdMember, Task, User
from .schemas import (
    CategoryInitPayload,
    CategoryPayload,
    HouseholdPayload,
    InvitePayload,
    LoginPayload,
    RegisterPayload,
    TaskCreatePayload,
    TaskPatch,
    serialize_category,
    serialize_member,
    serialize_task,
    user_summary,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging(LOG_LEVEL)
    init_db()
    yield


app = FastAPI(title="TidyHome household tasks", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    session_cookie=SESSION_COOKIE,
    max_age=SESSION_MAX_AGE,
    same_site="lax",
)


@app.exception_handler(ServiceError)
async def handle_service_error(request: Request, exc: ServiceError):
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    details = [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]
    return JSONResponse({"error": "Invalid request", "details": details}, status_code=400)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterPayload, session: Session = Depends(get_session)):
    user = users.register_user(session, payload)
    return {"message": "User created successfully", "userId": user.id}


@app.post("/api/auth/login")
def login(request: Request, payload: LoginPayload, session: Session = Depends(get_session)):
    user = users.authenticate(session, payload.email, payload.password)
    if not user:
        raise Unauthorized("Invalid credentials")
    login_user(request, user)
    return {"user": user_summary(user)}


@app.post("/api/auth/logout")
def logout(request: Request):
    logout_user(request)
    return {"message": "Logged out"}


@app.get("/api/auth/session")
def current_session(user: User = Depends(require_user)):
    return {"user": user_summary(user)}


@app.get("/api/tasks")
def list_tasks(
    status: str = "all",
    priority: Optional[str] = None,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    household_id: Optional[int] = Query(None, alias="householdId"),
    assigned_to_id: Optional[int] = Query(None, alias="assignedToId"),
    limit: int = Query(TASK_PAGE_LIMIT, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: RequestContext = Depends(get_context),
):
    filters = tasks.TaskFilters(
        status=status,
        priority=priority,
        category_id=category_id,
        household_id=household_id,
        assigned_to_id=assigned_to_id,
        limit=limit,
        offset=offset,
    )
    return tasks.list_tasks(ctx, filters)


@app.post("/api/tasks", status_code=201)
def create_task(payload: TaskCreatePayload, ctx: RequestContext = Depends(get_context)):
    task = tasks.create_task(ctx, payload)
    return serialize_task(ctx.session, task)


@app.get("/api/tasks/upcoming")
def upcoming_tasks(
    limit: int = Query(UPCOMING_LIMIT, ge=1, le=100),
    ctx: RequestContext = Depends(get_context),
):
    return dashboard.upcoming_tasks(ctx.session, ctx.user_id, ctx.now, limit)


@app.get("/api/tasks/{task_id}")
def task_detail(task_id: int, ctx: RequestContext = Depends(get_context)):
    return tasks.get_task_detail(ctx, task_id)


@app.patch("/api/tasks/{task_id}")
def update_task(task_id: int, patch: TaskPatch, ctx: RequestContext = Depends(get_context)):
    task = tasks.update_task(ctx, task_id, patch)
    return serialize_task(ctx.session, task)


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: int, ctx: RequestContext = Depends(get_context)):
    tasks.delete_task(ctx, task_id)
    return {"message": "Task deleted successfully"}


@app.get("/api/categories")
def list_categories(ctx: RequestContext = Depends(get_context)):
    return categories.list_categories(ctx)


@app.post("/api/categories", status_code=201)
def create_category(payload: CategoryPayload, ctx: RequestContext = Depends(get_context)):
    return serialize_category(categories.create_category(ctx, payload))


@app.post("/api/categories/initialize")
def initialize_categories(
    payload: Optional[CategoryInitPayload] = None,
    ctx: RequestContext = Depends(get_context),
):
    household_id = payload.household_id if payload else None
    rows, created = categories.get_or_create_defaults(ctx, household_id)
    body = {
        "message": "Default categories created successfully"
        if created
        else "Categories already exist",
        "categories": [serialize_category(c) for c in rows],
        "count": len(rows) if created else 0,
    }
    return JSONResponse(jsonable_encoder(body), status_code=201 if created else 200)


@app.patch("/api/categories/{category_id}")
def update_category(
    category_id: int, payload: CategoryPayload, ctx: RequestContext = Depends(get_context)
):
    return serialize_category(categories.update_category(ctx, category_id, payload))


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: int, ctx: RequestContext = Depends(get_context)):
    categories.delete_category(ctx, category_id)
    return {"message": "Category deleted successfully"}


@app.get("/api/households")
def list_households(ctx: RequestContext = Depends(get_context)):
    return households.list_households(ctx)


@app.post("/api/households", status_code=201)
def create_household(payload: HouseholdPayload, ctx: RequestContext = Depends(get_context)):
    household = households.create_household(ctx, payload)
    return households.serialize_household(household, ctx.user_id)


@app.post("/api/households/invite", status_code=201)
def invite_member(payload: InvitePayload, ctx: RequestContext = Depends(get_context)):
    member = households.invite_member(ctx, payload)
    return {"message": "User added to household successfully", "member": serialize_member(member)}


@app.get("/api/dashboard/stats")
def dashboard_stats(ctx: RequestContext = Depends(get_context)):
    return dashboard.dashboard_stats(ctx.session, ctx.user_id, ctx.now)


@app.get("/api/dashboard/cleanliness")
def cleanliness(ctx: RequestContext = Depends(get_context)):
    return dashboard.cleanliness_for_user(ctx.session, ctx.user_id, ctx.now)


@app.get("/api/health")
def health(request: Request, session: Session = Depends(get_session)):
    user_id = None
    try:
        # covers the user lookup as well as the counts
        user = require_user(get_current_user(request, session))
        user_id = user.id
        task_count = session.exec(
            select(func.count(Task.id)).where(visible_to(Task, user_id))
        ).one()
        category_count = session.exec(
            select(func.count(Category.id)).where(visible_to(Category, user_id))
        ).one()
        household_count = session.exec(
            select(func.count(HouseholdMember.id)).where(HouseholdMember.user_id == user_id)
        ).one()
    except SQLAlchemyError:
        logger.exception("health check failed for user %s", user_id)
        return JSONResponse(
            {
                "status": "unhealthy",
                "error": "Database connection failed",
                "timestamp": datetime.now().isoformat(),
            },
            status_code=500,
        )
    return {
        "status": "healthy",
        "user": user_summary(user),
        "data": {
            "tasks": task_count,
            "categories": category_count,
            "households": household_count,
        },
        "timestamp": datetime.now().isoformat(),
    }


def run():
    # logging comes from setup_logging in the lifespan
    uvicorn.run(app, host=HOST, port=PORT, log_config=None)


if __name__ == "__main__":
    run()
