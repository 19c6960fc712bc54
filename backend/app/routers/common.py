"""
路由公共工具：领域错误到 HTTP 错误的映射
"""
from fastapi import HTTPException, status
from app.services.errors import BookingDomainError, ErrorCategory

CATEGORY_STATUS = {
    ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.REFERENTIAL: status.HTTP_409_CONFLICT,
}


def http_error(error: BookingDomainError) -> HTTPException:
    """转换为 HTTPException，detail 中带错误码便于客户端区分"""
    return HTTPException(
        status_code=CATEGORY_STATUS.get(error.category, status.HTTP_400_BAD_REQUEST),
        detail={"code": error.code, "message": error.message},
    )
