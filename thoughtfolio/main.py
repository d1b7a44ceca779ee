import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from . import __version__
from .config import settings
from .config.log import configure_logging
from .db import create_db_and_tables
from .errors import ThoughtFolioError, classify_error
from .routers import calendar, capture, contexts, discover, extract, health, moments, search, thoughts

configure_logging()
log = logging.getLogger(__name__)

app = FastAPI(title="ThoughtFolio API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(moments.router, prefix="/api")
app.include_router(thoughts.router, prefix="/api")
app.include_router(contexts.router, prefix="/api")
app.include_router(capture.router, prefix="/api")
app.include_router(search.router, prefix="/api")
app.include_router(calendar.router, prefix="/api")
app.include_router(discover.router, prefix="/api")
app.include_router(extract.router, prefix="/api")


@app.on_event("startup")
def on_startup():
    create_db_and_tables()


@app.exception_handler(ThoughtFolioError)
async def thoughtfolio_error_handler(request: Request, exc: ThoughtFolioError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
    return JSONResponse(status_code=400, content={"error": f"Invalid {field}: {first.get('msg', 'bad value')}"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    category, _ = classify_error(str(exc))
    log.exception("Unhandled %s error on %s %s", category, request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
def root():
    return {"message": "ThoughtFolio API", "version": __version__}
