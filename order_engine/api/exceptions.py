"""
API异常定义与全局异常处理器
"""

import logging
from typing import Any, List, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from order_engine.core.exceptions import StorageError
from order_engine.models.result import (
    CouponErrorCode,
    OperationResult,
    ValidationErrorCode,
    WorkflowErrorCode
)

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {
    CouponErrorCode.NOT_FOUND.value,
    ValidationErrorCode.PRODUCT_NOT_FOUND.value,
    WorkflowErrorCode.ORDER_NOT_FOUND.value,
}

CONFLICT_CODES = {
    CouponErrorCode.USAGE_LIMIT_REACHED.value,
    CouponErrorCode.ALREADY_USED_BY_USER.value,
    CouponErrorCode.CODE_GENERATION_EXHAUSTED.value,
    ValidationErrorCode.DUPLICATE_FLASH_SALE.value,
    ValidationErrorCode.ORDER_ID_CONFLICT.value,
    WorkflowErrorCode.INVALID_TRANSITION.value,
}


class BusinessException(Exception):
    """业务异常，由路由层把失败的操作结果转换而来"""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or []

    @classmethod
    def from_result(cls, result: OperationResult) -> "BusinessException":
        if result.error_code in NOT_FOUND_CODES:
            status_code = status.HTTP_404_NOT_FOUND
        elif result.error_code in CONFLICT_CODES:
            status_code = status.HTTP_409_CONFLICT
        else:
            status_code = status.HTTP_400_BAD_REQUEST
        return cls(
            message=result.message or result.error_code,
            error_code=result.error_code,
            status_code=status_code,
            details=result.details
        )


def unwrap(result: OperationResult) -> Any:
    """成功时返回数据，失败时抛出业务异常"""
    if not result.success:
        raise BusinessException.from_result(result)
    return result.data


def _error_body(error_code: str, message: str, details: Any = None) -> dict:
    return {
        "success": False,
        "error_code": error_code,
        "message": message,
        "details": details if details is not None else []
    }


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败"""
    logger.info(f"请求参数校验失败 {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content=_error_body("request_validation_error", "请求参数错误", jsonable_errors(exc))
    )


def jsonable_errors(exc: RequestValidationError) -> List[dict]:
    return [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("http_error", str(exc.detail))
    )


async def storage_exception_handler(request: Request, exc: StorageError):
    """存储层不可用"""
    logger.error(f"存储层错误 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body("storage_error", "存储服务暂时不可用，请稍后重试")
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """未被服务层包装的数据库错误"""
    logger.error(f"数据库错误 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body("storage_error", "存储服务暂时不可用，请稍后重试")
    )


async def business_exception_handler(request: Request, exc: BusinessException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error_code, exc.message, exc.details)
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"未处理的异常 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("internal_error", "服务器内部错误")
    )
