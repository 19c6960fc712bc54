"""
身份上下文解析
令牌由外部身份服务签发；这里只负责校验签名并解析出“当前用户”和“当前图书馆”，
领域服务只接收解析后的 ID
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from app.config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer()


class CallerRole(str, Enum):
    """调用方角色"""
    LIBRARIAN = "librarian"    # 图书馆管理员
    STUDENT = "student"        # 学生（预订人）


@dataclass(frozen=True)
class CallerContext:
    """已解析的调用方身份"""
    user_id: int
    role: CallerRole
    library_id: Optional[int] = None

    @property
    def is_librarian(self) -> bool:
        return self.role == CallerRole.LIBRARIAN


def create_access_token(user_id: int, role: CallerRole, library_id: Optional[int] = None) -> str:
    """签发 token（身份服务与测试使用）"""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": str(user_id),
        "role": role.value if isinstance(role, CallerRole) else str(role),
        "exp": expire,
    }
    if library_id is not None:
        to_encode["library_id"] = library_id
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """解码 JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )


async def get_caller_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CallerContext:
    """获取当前调用方"""
    payload = decode_token(credentials.credentials)
    try:
        return CallerContext(
            user_id=int(payload["sub"]),
            role=CallerRole(payload.get("role", CallerRole.STUDENT.value)),
            library_id=payload.get("library_id"),
        )
    except (KeyError, ValueError):
        logger.warning("Token payload missing or malformed identity claims")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )


async def require_librarian(ctx: CallerContext = Depends(get_caller_context)) -> CallerContext:
    """要求图书馆管理员身份，且 token 绑定了图书馆"""
    if ctx.role != CallerRole.LIBRARIAN or ctx.library_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="需要图书馆管理员权限"
        )
    return ctx
