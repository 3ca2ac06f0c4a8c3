from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from tripdesk.core.config import settings
from tripdesk.core.errors import AppError
from tripdesk.core.logging import setup_logging
from tripdesk.core.exceptions import (
    app_error_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from tripdesk.db.session import AsyncSessionLocal
from tripdesk.services.notification_queue import NotificationQueue
from tripdesk.services.official_identity import OfficialIdentityResolver
from tripdesk.services.realtime import RoomBroadcaster

# Setup Logging
setup_logging()
logger = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager for the application.
    Resolves the official account and runs the notification worker.
    """
    logger.info("startup", project=settings.PROJECT_NAME)

    async with AsyncSessionLocal() as session:
        app.state.official = await OfficialIdentityResolver(session).ensure()
    if app.state.official is None:
        logger.warning("official_user_unavailable_at_startup")

    app.state.broadcaster = RoomBroadcaster()
    app.state.notification_queue = NotificationQueue(
        AsyncSessionLocal,
        notifier=app.state.broadcaster,
        official=app.state.official,
    )
    await app.state.notification_queue.start()

    yield

    await app.state.notification_queue.stop()
    logger.info("shutdown")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Support conversations and trip verification review",
    lifespan=lifespan,
    docs_url=f"{settings.API_V1_STR}/docs",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
)

# Middleware: CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Exception Handlers
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

# Health Check
@app.get("/health", tags=["system"])
@app.get(f"{settings.API_V1_STR}/health", tags=["system"], include_in_schema=False)
async def health_check():
    """
    Public health check endpoint for load balancers.
    """
    return {"status": "ok", "environment": settings.ENVIRONMENT}


from tripdesk.api.v1 import realtime
from tripdesk.api.v1.public import visits as public_visits, support as public_support
from tripdesk.api.v1.admin import auth as admin_auth, support_chat as admin_support_chat, reviews as admin_reviews

app.include_router(admin_auth.router, prefix=f"{settings.API_V1_STR}/admin/auth", tags=["admin-auth"])
app.include_router(admin_support_chat.router, prefix=f"{settings.API_V1_STR}/admin/conversations", tags=["admin-support"])
app.include_router(admin_reviews.router, prefix=f"{settings.API_V1_STR}/admin/tripscore", tags=["admin-review"])
app.include_router(public_visits.router, prefix=f"{settings.API_V1_STR}/visits", tags=["visits"])
app.include_router(public_support.router, prefix=f"{settings.API_V1_STR}/support", tags=["support"])
app.include_router(realtime.router, prefix=f"{settings.API_V1_STR}/realtime", tags=["realtime"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("tripdesk.main:app", host="0.0.0.0", port=8000, reload=True)
