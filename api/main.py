"""FastAPI application entrypoint."""
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from api.chat.chat import router as chat_router
from models import ErrorResponse
from services.conversation_service import get_conversation_service
from services.exceptions import (
    GENERIC_ERROR_MESSAGE,
    ChatServiceError,
    SessionNotFoundError,
    ValidationError,
)
from services.llm_service import get_llm_service
from utils.mongodb_conn import get_mongodb_connection
from utils.redis_conn import get_redis_cache

load_dotenv()

logging.basicConfig(level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
logger = logging.getLogger(__name__)

# Keep request headers (API keys) out of the logs
for _name in ("httpx", "httpcore", "openai"):
    logging.getLogger(_name).setLevel(logging.WARNING)


def _error_response(status_code: int, error: str, message: str = None, details=None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        return _error_response(400, "Invalid JSON in request body")
    details = [
        {
            # drop the "body"/"query" prefix FastAPI adds
            "path": [part for part in err.get("loc", ())[1:]],
            "message": err.get("msg", "Invalid value"),
        }
        for err in errors
    ]
    return _error_response(400, "Invalid request", details=details)


async def validation_error_handler(request: Request, exc: ValidationError):
    return _error_response(400, exc.public_message, details=exc.details or None)


async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
    return _error_response(404, exc.public_message)


async def chat_service_error_handler(request: Request, exc: ChatServiceError):
    return _error_response(500, exc.public_message, GENERIC_ERROR_MESSAGE)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("[API] unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, ChatServiceError.public_message, GENERIC_ERROR_MESSAGE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await get_conversation_service().ensure_indexes()
    except PyMongoError as e:
        logger.warning("[API] could not create MongoDB indexes: %s", e)
    if not get_llm_service().is_configured():
        logger.warning("[API] LLM not configured, chat replies will be the unavailable message")
    yield
    get_mongodb_connection().close_mongo_client()


def _cors_origins() -> list:
    raw = os.getenv("CORS_ORIGINS", "*").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def create_app() -> FastAPI:
    app = FastAPI(title=os.getenv("API_TITLE", "Support Chat API"), lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(SessionNotFoundError, session_not_found_handler)
    app.add_exception_handler(ChatServiceError, chat_service_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(chat_router)

    @app.get("/health")
    async def health():
        if not await get_mongodb_connection().check_connection():
            return {"status": "error", "message": "MongoDB connection failed"}
        # Redis is optional: report it, don't fail on it
        return {
            "status": "ok",
            "message": "Support chat backend is running",
            "cache": "ok" if get_redis_cache().check_connection() else "unavailable",
            "llm_configured": get_llm_service().is_configured(),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
