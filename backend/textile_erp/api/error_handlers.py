"""全局异常处理

- HTTPException → FastAPI 默认处理（{"detail": "..."}）
- 请求校验失败 → 400，附字段级错误
- 未捕获异常 → 500，记录堆栈，不向客户端泄露内部信息
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from textile_erp.core.logging_config import get_logger

logger = get_logger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """注册全局异常处理器"""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = build_validation_errors(exc)
        logger.warning(f"请求校验失败 {request.method} {request.url.path}: {errors}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder({
                "detail": errors[0]["message"] if errors else "Invalid request data",
                "errors": errors,
            }),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"未处理的异常 {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )


def build_validation_errors(exc: RequestValidationError) -> list:
    """整理 pydantic 错误为 [{field, message, type}]"""
    errors = []
    for e in exc.errors():
        # body 校验的第一段固定是 "body"，去掉便于阅读
        loc = [str(part) for part in e.get("loc", ()) if part != "body"]
        message = e.get("msg", "")
        # model_validator 抛出的 ValueError 带 "Value error, " 前缀
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({
            "field": ".".join(loc),
            "message": message,
            "type": e.get("type", ""),
        })
    return errors
