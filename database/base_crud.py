"""通用 CRUD 基类。

所有仓库继承 BaseCRUD，获得按主键/按条件的查询、更新、删除能力。
数据库异常统一转换为 DataStoreError，由操作边界处理。
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Type

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .connection import DatabaseConnection
from .exceptions import DataStoreError


class BaseCRUD:
    """通用 CRUD 基类。

    方法都接受可选的外部 session：传入时在该会话内执行且不提交，
    由调用方统一提交；不传时自行开启会话并提交。

    Attributes:
        conn: 数据库连接管理器。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn

    def _get_session(self) -> Session:
        return self.conn.get_session()

    @contextmanager
    def _scope(self, session: Optional[Session] = None,
               action: str = "database call") -> Iterator[Session]:
        """开启（或复用）会话，失败时回滚并抛出 DataStoreError。"""
        if session is not None:
            try:
                yield session
            except SQLAlchemyError as e:
                logger.error(f"{action} failed: {e}")
                raise DataStoreError(f"{action} failed: {e}") from e
            return

        sess = self._get_session()
        try:
            yield sess
            sess.commit()
        except SQLAlchemyError as e:
            sess.rollback()
            logger.error(f"{action} failed: {e}")
            raise DataStoreError(f"{action} failed: {e}") from e
        finally:
            sess.close()

    def get_by_id(self, model: Type[Any], record_id: int,
                  session: Optional[Session] = None) -> Optional[Any]:
        """按主键查询单条记录，不存在返回 None。"""
        with self._scope(session, f"get {model.__tablename__}") as sess:
            return sess.get(model, record_id)

    def get_all(self, model: Type[Any],
                filters: Optional[Dict[str, Any]] = None,
                order_by: Optional[str] = None,
                session: Optional[Session] = None) -> List[Any]:
        """按等值条件查询记录列表。

        Args:
            model: ORM 模型类。
            filters: 字段名到值的等值过滤字典（可选）。
            order_by: 排序字段名（可选，升序）。

        Returns:
            记录列表。
        """
        with self._scope(session, f"list {model.__tablename__}") as sess:
            query = sess.query(model)
            if filters:
                query = query.filter_by(**filters)
            if order_by:
                query = query.order_by(getattr(model, order_by))
            return query.all()

    def count(self, model: Type[Any],
              filters: Optional[Dict[str, Any]] = None,
              session: Optional[Session] = None) -> int:
        """按等值条件计数。"""
        with self._scope(session, f"count {model.__tablename__}") as sess:
            query = sess.query(model)
            if filters:
                query = query.filter_by(**filters)
            return query.count()

    def update_by_id(self, model: Type[Any], record_id: int,
                     session: Optional[Session] = None,
                     **values: Any) -> Optional[Any]:
        """按主键更新字段。

        Returns:
            更新后的对象，记录不存在返回 None。
        """
        with self._scope(session, f"update {model.__tablename__}") as sess:
            obj = sess.get(model, record_id)
            if obj is None:
                return None
            for key, value in values.items():
                setattr(obj, key, value)
            sess.flush()
            sess.refresh(obj)
            return obj

    def update_where(self, model: Type[Any], filters: Dict[str, Any],
                     values: Dict[str, Any],
                     session: Optional[Session] = None) -> int:
        """按等值条件批量更新。

        Returns:
            受影响的行数。
        """
        with self._scope(session, f"update {model.__tablename__}") as sess:
            return sess.query(model).filter_by(**filters).update(
                values, synchronize_session=False
            )

    def delete_by_id(self, model: Type[Any], record_id: int,
                     session: Optional[Session] = None) -> bool:
        """按主键删除。

        Returns:
            是否删除了记录。
        """
        return self.delete_where(
            model, {"id": record_id}, session=session
        ) > 0

    def delete_where(self, model: Type[Any], filters: Dict[str, Any],
                     session: Optional[Session] = None) -> int:
        """按等值条件删除。重复执行是安全的。

        Returns:
            删除的行数。
        """
        with self._scope(session, f"delete {model.__tablename__}") as sess:
            return sess.query(model).filter_by(**filters).delete(
                synchronize_session=False
            )
