"""
持久化提供者抽象层：仅定义接口，app 层实现具体存储
"""
from core.persistence.store import IConditionalStore

__all__ = ["IConditionalStore"]
