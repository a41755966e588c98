from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.errors import SkillUpError, ValidationError

logger = logging.getLogger("skillup.api")


async def skillup_error_handler(request: Request, exc: SkillUpError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("request_failed path=%s code=%s detail=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed payloads share the 400 VALIDATION_ERROR shape
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"detail": problems or "Invalid request", "code": ValidationError.code},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SkillUpError, skillup_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
