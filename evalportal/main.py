# evalportal/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from evalportal.core.config import settings
from evalportal.core.exceptions import AssignmentError
from evalportal.core.logging_config import setup_logging
from evalportal.db.base import Base
from evalportal.db.session import engine
from evalportal.api.v1.endpoints import assignments, auth, faculty, health

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)


@app.exception_handler(AssignmentError)
def assignment_error_handler(request: Request, exc: AssignmentError):
    logger.warning(
        "%s %s -> %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(assignments.router, prefix="/api/v1")
app.include_router(faculty.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1/health")
