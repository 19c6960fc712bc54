"""
持久化提供者接口：域无关

领域服务依赖三个原语：
- insert_if_no_conflict: 原子的“冲突检查 + 插入”
- update: 按 ID 打补丁，可带期望值实现比较并交换
- find: 按条件查询
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence


class IConditionalStore(ABC):
    """条件写入存储接口"""

    @abstractmethod
    def insert_if_no_conflict(self, entity: Any, conflict_criteria: Sequence[Any]) -> Any:
        """插入实体；若满足 conflict_criteria 的记录已存在则拒绝

        冲突检查与插入对同一分配键必须是原子的。

        Args:
            entity: 待插入的实体
            conflict_criteria: 冲突条件（由实现解释，如 SQLAlchemy 过滤表达式）

        Returns:
            已持久化的实体
        """

    @abstractmethod
    def update(self, entity_id: Any, patch: Dict[str, Any],
               expected: Optional[Dict[str, Any]] = None) -> bool:
        """更新实体

        Args:
            entity_id: 实体 ID
            patch: 要写入的字段
            expected: 可选，写入前必须仍成立的字段值（比较并交换）

        Returns:
            是否有记录被更新
        """

    @abstractmethod
    def find(self, **filters: Any) -> List[Any]:
        """按字段等值条件查询"""
