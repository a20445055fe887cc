"""HTTP API exposing the scrape operations."""

from __future__ import annotations

import hmac
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Path as PathParam, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from card_scraper.config_loader import ensure_directories, get_api_config, get_image_config, load_config
from card_scraper.errors import AuthError, ScraperError
from card_scraper.gateway import UpsertResult
from card_scraper.models import get_engine, get_session_factory, init_db
from card_scraper.repositories.card_repository import CardRepository
from card_scraper.service import ScraperService


def _load_api_config():
    try:
        return load_config()
    except FileNotFoundError:
        fallback = Path(__file__).resolve().parents[1] / "config.yaml"
        return load_config(str(fallback))


_config = _load_api_config()
_engine = get_engine(_config)
_SessionFactory = get_session_factory(_engine)
_image_config = get_image_config(_config)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    ensure_directories(_config)
    init_db(_engine)
    logger.info("Scraper API started")
    yield


app = FastAPI(title="Credit Card Scraper API", version="1.0.0", lifespan=lifespan)
app.mount(
    "/images",
    StaticFiles(directory=_image_config.get("root", "data/images"), check_dir=False),
    name="images",
)


def envelope(data: Any = None, error: Optional[str] = None, code: Optional[str] = None) -> dict:
    """Response envelope shared by every endpoint."""
    body: dict = {"success": error is None}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    if code is not None:
        body["code"] = code
    body["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return body


def respond(data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope(data)))


def fail(status_code: int, error: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope(error=error, code=code))


@app.exception_handler(ScraperError)
async def scraper_error_handler(_request: Request, exc: ScraperError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return fail(exc.status_code, exc.message, exc.code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return fail(400, "; ".join(messages) or "Invalid request", "VALIDATION_ERROR")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException):
    code = "NOT_FOUND" if exc.status_code == 404 else "INTERNAL"
    return fail(exc.status_code, str(exc.detail), code)


@app.exception_handler(Exception)
async def unexpected_error_handler(_request: Request, exc: Exception):
    logger.exception(f"Unhandled error: {exc}")
    return fail(500, "Internal server error", "INTERNAL")


@app.middleware("http")
async def image_cache_headers(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/images/") and response.status_code == 200:
        response.headers["Cache-Control"] = _image_config.get("cache_control", "public, max-age=31536000")
    return response


def get_session():
    session = _SessionFactory()
    try:
        yield session
    finally:
        session.close()


def get_service(session: Session = Depends(get_session)) -> ScraperService:
    return ScraperService(_config, CardRepository(session))


def get_api_key() -> str:
    return str(get_api_config(_config).get("key") or "")


def require_api_key(
    x_api_key: Optional[str] = Header(default=None),
    expected: str = Depends(get_api_key),
):
    if not x_api_key:
        raise AuthError("API key required")
    if not expected or not hmac.compare_digest(x_api_key.encode("utf-8"), expected.encode("utf-8")):
        raise AuthError("Invalid API key", status_code=403)


_AUTH = [Depends(require_api_key)]


class _UrlBody(BaseModel):
    @staticmethod
    def _check_url(value: str) -> str:
        value = (value or "").strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("Must be a valid URL")
        return value


class ScrapeCardRequest(_UrlBody):
    url: str
    forceUpdate: bool = False

    @field_validator("url")
    @classmethod
    def url_is_absolute(cls, value: str) -> str:
        return cls._check_url(value)


class BulkScrapeRequest(_UrlBody):
    categoryUrl: str
    limit: int = Field(default=20, ge=1, le=100)
    skipExisting: bool = True

    @field_validator("categoryUrl")
    @classmethod
    def url_is_absolute(cls, value: str) -> str:
        return cls._check_url(value)


class RateHubBulkRequest(BulkScrapeRequest):
    limit: int = Field(default=50, ge=1, le=100)


class ImportAllRequest(BaseModel):
    limitPerCategory: int = Field(default=30, ge=1, le=100)
    skipExisting: bool = True


def _scrape_response(result: UpsertResult) -> JSONResponse:
    data = {"card": result.card, "isNew": result.is_new, "imageUploaded": result.image_uploaded}
    return respond(data, status_code=201 if result.is_new else 200)


@app.get("/health")
def health():
    return respond({"status": "ok"})


@app.get("/v1/scrape/search", dependencies=_AUTH)
def search_cards(
    q: str = Query(..., min_length=2, max_length=100),
    limit: int = Query(default=10, ge=1, le=50),
    service: ScraperService = Depends(get_service),
):
    return respond(service.search(q.strip(), limit))


@app.post("/v1/scrape/card", dependencies=_AUTH)
def scrape_card(body: ScrapeCardRequest, service: ScraperService = Depends(get_service)):
    return _scrape_response(service.scrape_card(body.url, force_update=body.forceUpdate))


@app.get("/v1/scrape/card/{slug}", dependencies=_AUTH)
def scrape_by_slug(
    slug: str = PathParam(..., min_length=1, max_length=200, pattern=r"^[a-z0-9-]+$"),
    forceUpdate: bool = Query(default=False),
    service: ScraperService = Depends(get_service),
):
    return _scrape_response(service.scrape_by_slug(slug, force_update=forceUpdate))


@app.post("/v1/scrape/bulk", dependencies=_AUTH)
def bulk_scrape(body: BulkScrapeRequest, service: ScraperService = Depends(get_service)):
    summary = service.bulk(body.categoryUrl, limit=body.limit, skip_existing=body.skipExisting)
    return respond(summary.as_dict())


@app.post("/v1/scrape/update/{card_id}", dependencies=_AUTH)
def update_card(
    card_id: str = PathParam(..., min_length=1, max_length=100),
    service: ScraperService = Depends(get_service),
):
    result = service.update_card(card_id)
    return respond({"card": result.card, "changes": result.changes})


@app.post("/v1/scrape/ratehub/card", dependencies=_AUTH)
def scrape_ratehub_card(body: ScrapeCardRequest, service: ScraperService = Depends(get_service)):
    return _scrape_response(service.ratehub_card(body.url, force_update=body.forceUpdate))


@app.post("/v1/scrape/ratehub/bulk", dependencies=_AUTH)
def bulk_scrape_ratehub(body: RateHubBulkRequest, service: ScraperService = Depends(get_service)):
    summary = service.ratehub_bulk(body.categoryUrl, limit=body.limit, skip_existing=body.skipExisting)
    return respond(summary.as_dict())


@app.get("/v1/scrape/ratehub/categories", dependencies=_AUTH)
def ratehub_categories(service: ScraperService = Depends(get_service)):
    return respond(service.ratehub_categories())


@app.post("/v1/scrape/ratehub/import-all", dependencies=_AUTH)
def import_all_ratehub(
    body: Optional[ImportAllRequest] = None,
    service: ScraperService = Depends(get_service),
):
    body = body or ImportAllRequest()
    summary = service.import_all(limit_per_category=body.limitPerCategory, skip_existing=body.skipExisting)
    return respond(summary.as_dict())
