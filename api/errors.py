from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from doc_chat.exception.custom_exception import (
    AnswerPipelineError,
    DocumentChatException,
    NotFoundError,
    RetrievalError,
    StoreWriteError,
    UnsupportedFormatError,
)
from doc_chat.logger import GLOBAL_LOGGER as log

EXCEPTION_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    UnsupportedFormatError: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    RetrievalError: status.HTTP_502_BAD_GATEWAY,
    AnswerPipelineError: status.HTTP_502_BAD_GATEWAY,
    StoreWriteError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: DocumentChatException) -> int:
    # a pipeline failure caused by a missing document is still a 404
    if isinstance(exc, AnswerPipelineError) and isinstance(exc.cause, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    for exception_class, code in EXCEPTION_STATUS.items():
        if isinstance(exc, exception_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """
    Every failure leaves the API as {"success": false, "error": "..."}.
    """

    @app.exception_handler(DocumentChatException)
    async def domain_exception_handler(request: Request, exc: DocumentChatException):
        code = status_for(exc)
        log.error(
            "Request failed | path=%s | error_type=%s | error=%s",
            request.url.path,
            type(exc).__name__,
            str(exc),
        )
        if exc.traceback_str:
            log.debug("Cause traceback | path=%s\n%s", request.url.path, exc.traceback_str)
        return error_response(code, str(exc))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        log.warning("Request rejected | path=%s | detail=%s", request.url.path, exc.detail)
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = [
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "; ".join(messages))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        log.exception("Unhandled error | path=%s", request.url.path)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
