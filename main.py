from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.core.config import settings
from app.core.logging import configure_logging
from app.endpoints import assignments, attempt_control, attempts, audit, exams, grading, users
from app.middleware.exceptions import global_exception_handler, validation_exception_handler
from app.middleware.logging import RequestLoggingMiddleware
from app.core.scheduler import start_scheduler, stop_scheduler
import app.models.registry  # noqa: F401

configure_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(StarletteHTTPException, global_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(exams.router, prefix="/exams", tags=["Exams"])
app.include_router(assignments.router, prefix="/assignments", tags=["Assignments"])
app.include_router(attempts.router, prefix="/attempts", tags=["Attempts"])
app.include_router(attempt_control.router, prefix="/attempt-control", tags=["Attempt Control"])
app.include_router(grading.router, prefix="/grading", tags=["Grading"])
app.include_router(audit.router, prefix="/audit", tags=["Audit"])

@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "version": settings.VERSION}

@app.on_event("startup")
async def startup_event():
    start_scheduler()

@app.on_event("shutdown")
async def shutdown_event():
    stop_scheduler()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
