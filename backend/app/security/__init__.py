# Security module
from app.security.auth import (
    CallerRole, CallerContext, create_access_token,
    get_caller_context, require_librarian
)

__all__ = [
    'CallerRole', 'CallerContext', 'create_access_token',
    'get_caller_context', 'require_librarian'
]
