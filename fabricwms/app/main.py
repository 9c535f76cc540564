from fastapi import FastAPI

from fabricwms.app.api.errors import register_exception_handlers
from fabricwms.app.api.v1.router import router as v1_router
from fabricwms.app.core.config import get_settings
from fabricwms.app.core.logging import configure_logging

configure_logging()

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)
register_exception_handlers(app)
app.include_router(v1_router, prefix="/v1")
