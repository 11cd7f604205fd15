from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from appraisal.infrastructure.config import get_settings
from appraisal.infrastructure.exceptions import (
    AppraisalError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    MultipleValidationError,
    NotFoundError,
    ValidationError,
)
from appraisal.infrastructure.logging import get_logger
from appraisal.web.routes import api

logger = get_logger(__name__)

STATUS_BY_ERROR: list[tuple[type[AppraisalError], int]] = [
    (ValidationError, 422),
    (MultipleValidationError, 422),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
]


def status_for(exc: AppraisalError) -> int:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return 500


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())),
                "message": error.get("msg"),
            }
            for error in exc.errors()
        ]
        logger.warning(f"Rejected request body on {request.method} {request.url.path}")
        body = {
            "code": ValidationError.code,
            "message": "Please correct the following errors and try again.",
            "details": {"errors": errors},
        }
        return JSONResponse(status_code=422, content=jsonable_encoder({"error": body}))

    @app.exception_handler(AppraisalError)
    async def appraisal_error_handler(request: Request, exc: AppraisalError) -> JSONResponse:
        status_code = status_for(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content=jsonable_encoder({"error": exc.to_dict()}),
        )


def create_application() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app.title,
        version=settings.app.version,
        debug=settings.app.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)
    app.include_router(api.router)
    return app


app = create_application()
