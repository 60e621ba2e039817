import logging
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

import config
from create_tables import create_tables
from database import SessionLocal
from logging_config import configure_logging

from modules.auth.services.auth_service import AuthService
from modules.documents.errors import (
    SigningWorkflowError, request_validation_error_handler, signing_workflow_error_handler,
    unhandled_error_handler
)
from modules.documents.job import start_maintenance_jobs
from modules.notifications.controllers.notification_controller import router as notification_router
from modules.documents.controllers.document_controller import router as document_router
from modules.documents.controllers.signature_controller import router as signature_router
from modules.auth.controllers.auth_controller import router as auth_router

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    configure_logging()
    logger.info("Starting SignFlow")
    create_tables()
    with SessionLocal() as session:
        AuthService.seed_admin(session)
    scheduler = start_maintenance_jobs()
    yield
    # --- Shutdown logic ---
    scheduler.shutdown(wait=False)
    logger.info("SignFlow stopped")

app = FastAPI(
    title="SignFlow",
    description="Document e-signature workflow: upload, send, sign and verify PDFs",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Origin",
    ],
    expose_headers=["Content-Disposition", "X-Document-Hash"],
    max_age=86400,
)

app.add_exception_handler(SigningWorkflowError, signing_workflow_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# Routers
app.include_router(auth_router)
app.include_router(notification_router, prefix="/notifications", tags=["notifications"])
app.include_router(document_router, prefix="/documents", tags=["documents"])
app.include_router(signature_router)

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
