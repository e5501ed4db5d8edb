from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from campsched.api.routes import (
    health,
    notifications,
    schedules,
    settings as settings_routes,
    users,
)
from campsched.core.config import get_settings
from campsched.core.exceptions import AppError
from campsched.core.middleware import RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from campsched.db.bootstrap import ensure_runtime_schema

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_runtime_schema()
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

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
app.include_router(users.router, prefix=settings.api_prefix, tags=["users"])
app.include_router(settings_routes.router, prefix=settings.api_prefix, tags=["settings"])
app.include_router(schedules.router, prefix=settings.api_prefix, tags=["schedules"])
app.include_router(notifications.router, prefix=settings.api_prefix, tags=["notifications"])
