from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import (
    auth,
    events,
    groups,
    health,
    notifications,
    schedule,
    student,
    teacher,
    users,
)
from app.core.access import build_route_policy
from app.core.config import get_settings
from app.core.exceptions import AppError, RateLimitedError
from app.core.middleware import AccessGateMiddleware, RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from app.core.permissions import build_permission_table
from app.db.bootstrap import ensure_runtime_schema_compatibility

settings = get_settings()

permission_table = build_permission_table()
route_policy = build_route_policy(permission_table, api_prefix=settings.api_prefix)


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_runtime_schema_compatibility()
    yield


async def app_error_handler(request: Request, exc: AppError):
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitedError) else None
    content: dict = {"error": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message, "details": errors})


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.state.permission_table = permission_table
app.state.route_policy = route_policy

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)

app.add_middleware(AccessGateMiddleware, policy=route_policy)
app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(SecurityHeadersMiddleware, settings=settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(auth.router, prefix=f"{settings.api_prefix}/auth", tags=["auth"])
app.include_router(groups.router, prefix=f"{settings.api_prefix}/admin/groups", tags=["groups"])
app.include_router(schedule.router, prefix=f"{settings.api_prefix}/admin", tags=["schedule"])
app.include_router(users.router, prefix=f"{settings.api_prefix}/admin/users", tags=["users"])
app.include_router(events.router, prefix=settings.api_prefix, tags=["events"])
app.include_router(notifications.router, prefix=settings.api_prefix, tags=["notifications"])
app.include_router(student.router, prefix=settings.api_prefix, tags=["student"])
app.include_router(teacher.router, prefix=settings.api_prefix, tags=["teacher"])
