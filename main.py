import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import connect, create_document, init_database
from errors import PortalError, log_exception
from logging_config import request_id_var, setup_logging
from routes import create_router
from schemas import User
from security import hash_password
from settings import get_settings

settings = get_settings()
setup_logging(level=settings.LOG_LEVEL, log_file=settings.LOG_FILE, use_json=settings.LOG_JSON)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    # the 500 handler runs outside this middleware and reads the id from here
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.error(f"{request.method} {request.url.path} -> 500 ({elapsed_ms:.1f} ms, unhandled error)")
        raise
    else:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        request_id_var.reset(token)


# ----------------------
# Error responses
# ----------------------
@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        log_exception(exc, context=f"{request.method} {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
        for err in exc.errors()
    ]
    message = details[0]["msg"] if details else "Invalid request payload"
    return JSONResponse(status_code=400, content={"error": message, "details": details})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    log_exception(exc, context=f"{request.method} {request.url.path}", extra_data={"request_id": request_id})
    headers = {"X-Request-ID": request_id} if request_id else None
    return JSONResponse(status_code=500, content={"error": "Internal server error"}, headers=headers)


# ----------------------
# Startup: connect, index, seed admin
# ----------------------
def seed_admin(db) -> None:
    if db["user"].find_one({"email": settings.ADMIN_EMAIL}):
        return
    create_document(db, "user", User(
        username="admin",
        email=settings.ADMIN_EMAIL,
        password_hash=hash_password(settings.ADMIN_PASSWORD),
        full_name="Administrator",
        role="admin",
    ))
    logger.info(f"Seeded admin account {settings.ADMIN_EMAIL}")


@app.on_event("startup")
def startup():
    if getattr(app.state, "db", None) is None:
        if not settings.DATABASE_URL:
            # the app still starts; store-backed endpoints answer 503
            logger.warning("DATABASE_URL not set, starting without a database")
            return
        app.state.db = connect(settings.DATABASE_URL, settings.DATABASE_NAME)

    if not getattr(app.state, "db_initialized", False):
        init_database(app.state.db)
        app.state.db_initialized = True
    try:
        seed_admin(app.state.db)
    except Exception as e:
        log_exception(e, context="admin seeding")


@app.on_event("shutdown")
def shutdown():
    db = getattr(app.state, "db", None)
    if db is not None:
        db.client.close()


# ----------------------
# Basic routes
# ----------------------
@app.get("/")
def root():
    return {"message": f"{settings.APP_NAME} running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
        "database_name": settings.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": [],
    }
    db = getattr(app.state, "db", None)
    try:
        if db is not None:
            response["collections"] = db.list_collection_names()
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return response


app.include_router(create_router(), prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
