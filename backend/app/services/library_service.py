"""
图书馆服务 - 本体操作层
管理 Library 对象（租户）：注册创建、资料编辑、停用；图书馆不删除
"""
from typing import List, Optional
import logging
from sqlalchemy.orm import Session
from app.models.ontology import Library
from app.models.schemas import LibraryCreate, LibraryUpdate
from app.services.errors import LibraryNotFound, LibraryInactive

logger = logging.getLogger(__name__)


class LibraryService:
    """图书馆服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_libraries(self, is_active: Optional[bool] = None) -> List[Library]:
        query = self.db.query(Library)
        if is_active is not None:
            query = query.filter(Library.is_active == is_active)
        return query.order_by(Library.id).all()

    def get_library(self, library_id: int) -> Library:
        """获取图书馆，不存在时抛出 LibraryNotFound"""
        library = self.db.query(Library).filter(Library.id == library_id).first()
        if not library:
            raise LibraryNotFound("图书馆不存在", {"library_id": library_id})
        return library

    def require_active(self, library_id: int) -> Library:
        """获取图书馆并确认其处于启用状态"""
        library = self.get_library(library_id)
        if not library.is_active:
            raise LibraryInactive("图书馆已停用，无法创建预订", {"library_id": library_id})
        return library

    def create_library(self, data: LibraryCreate) -> Library:
        library = Library(**data.model_dump())
        self.db.add(library)
        self.db.commit()
        self.db.refresh(library)
        logger.info(f"Library {library.id} registered: {library.name}")
        return library

    def update_library(self, library_id: int, data: LibraryUpdate) -> Library:
        """编辑图书馆资料（名称、默认费用）"""
        library = self.get_library(library_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(library, key, value)
        self.db.commit()
        self.db.refresh(library)
        return library

    def set_active(self, library_id: int, is_active: bool) -> Library:
        """停用/重新启用图书馆"""
        library = self.get_library(library_id)
        library.is_active = is_active
        self.db.commit()
        self.db.refresh(library)
        logger.info(f"Library {library_id} {'activated' if is_active else 'deactivated'}")
        return library
