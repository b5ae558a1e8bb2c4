"""实体仓库 —— 基础实体的数据访问层。

管理系统中的基础实体（顾客、売上種類、外注先），
这些实体被売上和外注コスト引用。

每个仓库继承 BaseCRUD 获得通用能力，并添加领域特定的查询方法。
"""
from typing import Optional, List
from loguru import logger
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .exceptions import ValidationError
from .models import Customer, SaleType, Outsource, UNCATEGORIZED_KEY


def _required_text(value: Optional[str], message: str,
                   field: str) -> str:
    """去除首尾空白并校验必填。"""
    text = (value or "").strip()
    if not text:
        raise ValidationError(message, field=field)
    return text


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip()


class CustomerRepository(BaseCRUD):
    """顾客 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, name: str, contact_person: Optional[str] = None,
               session: Optional[Session] = None) -> Customer:
        """新增顾客。

        Args:
            name: 顾客名称（必填，去除首尾空白）。
            contact_person: 担当者（可选）。

        Returns:
            新建的 Customer 对象。

        Raises:
            ValidationError: 名称为空。
        """
        name = _required_text(name, "顧客名を入力してください", "name")
        with self._scope(session, "insert customers") as sess:
            customer = Customer(
                name=name, contact_person=_optional_text(contact_person)
            )
            sess.add(customer)
            sess.flush()
            sess.refresh(customer)
        logger.info(f"Created customer {customer.id}: {customer.name}")
        return customer

    def update(self, customer_id: int, name: str,
               contact_person: Optional[str] = None,
               session: Optional[Session] = None) -> Optional[Customer]:
        """更新顾客信息，不存在返回 None。"""
        name = _required_text(name, "顧客名を入力してください", "name")
        return self.update_by_id(
            Customer, customer_id, session=session,
            name=name, contact_person=_optional_text(contact_person)
        )

    def list_all(self, session: Optional[Session] = None) -> List[Customer]:
        """按名称排序返回全部顾客。"""
        return self.get_all(Customer, order_by="name", session=session)

    def search(self, keyword: str,
               session: Optional[Session] = None) -> List[Customer]:
        """按名称做不区分大小写的部分匹配。

        Args:
            keyword: 搜索关键词。

        Returns:
            匹配的顾客列表。
        """
        with self._scope(session, "search customers") as sess:
            return sess.query(Customer).filter(
                Customer.name.ilike(f"%{keyword}%")
            ).order_by(Customer.name).all()


class SaleTypeRepository(BaseCRUD):
    """売上種類 仓库。

    维护未分类哨兵行（system_key="uncategorized"）。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def ensure_uncategorized(self, name: str = "未分類",
                             session: Optional[Session] = None) -> SaleType:
        """确保未分类哨兵存在（幂等）。

        Args:
            name: 新建时使用的显示名称。

        Returns:
            哨兵 SaleType 对象。
        """
        with self._scope(session, "seed sale_types") as sess:
            sentinel = sess.query(SaleType).filter(
                SaleType.system_key == UNCATEGORIZED_KEY
            ).first()
            if sentinel is None:
                sentinel = SaleType(
                    name=name, system_key=UNCATEGORIZED_KEY,
                    description="既定の売上種類"
                )
                sess.add(sentinel)
                sess.flush()
                sess.refresh(sentinel)
                logger.info(f"Seeded uncategorized sale type {sentinel.id}")
            return sentinel

    def get_uncategorized(self, session: Optional[Session] = None
                          ) -> Optional[SaleType]:
        """按 system_key 获取未分类哨兵，不存在返回 None。"""
        with self._scope(session, "get sale_types") as sess:
            return sess.query(SaleType).filter(
                SaleType.system_key == UNCATEGORIZED_KEY
            ).first()

    def get_or_create(self, name: str, description: Optional[str] = None,
                      session: Optional[Session] = None) -> SaleType:
        """获取或创建売上種類（按名称匹配）。"""
        name = _required_text(name, "種類名を入力してください", "name")
        with self._scope(session, "upsert sale_types") as sess:
            sale_type = sess.query(SaleType).filter(
                SaleType.name == name
            ).first()
            if not sale_type:
                sale_type = SaleType(
                    name=name, description=_optional_text(description)
                )
                sess.add(sale_type)
                sess.flush()
                sess.refresh(sale_type)
            return sale_type

    def create(self, name: str, description: Optional[str] = None,
               session: Optional[Session] = None) -> SaleType:
        """新增売上種類。

        Raises:
            ValidationError: 名称为空。
        """
        name = _required_text(name, "種類名を入力してください", "name")
        with self._scope(session, "insert sale_types") as sess:
            sale_type = SaleType(
                name=name, description=_optional_text(description)
            )
            sess.add(sale_type)
            sess.flush()
            sess.refresh(sale_type)
        logger.info(f"Created sale type {sale_type.id}: {sale_type.name}")
        return sale_type

    def update(self, sale_type_id: int, name: str,
               description: Optional[str] = None,
               session: Optional[Session] = None) -> Optional[SaleType]:
        """更新売上種類。哨兵也可以改名，system_key 不变。"""
        name = _required_text(name, "種類名を入力してください", "name")
        return self.update_by_id(
            SaleType, sale_type_id, session=session,
            name=name, description=_optional_text(description)
        )

    def list_all(self, session: Optional[Session] = None) -> List[SaleType]:
        return self.get_all(SaleType, order_by="name", session=session)


class OutsourceRepository(BaseCRUD):
    """外注先 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, name: str, email: Optional[str] = None,
               notes: Optional[str] = None,
               session: Optional[Session] = None) -> Outsource:
        """新增外注先。

        Raises:
            ValidationError: 名称为空。
        """
        name = _required_text(name, "外注先名を入力してください", "name")
        with self._scope(session, "insert outsources") as sess:
            outsource = Outsource(
                name=name, email=_optional_text(email),
                notes=_optional_text(notes)
            )
            sess.add(outsource)
            sess.flush()
            sess.refresh(outsource)
        logger.info(f"Created outsource {outsource.id}: {outsource.name}")
        return outsource

    def update(self, outsource_id: int, name: str,
               email: Optional[str] = None, notes: Optional[str] = None,
               session: Optional[Session] = None) -> Optional[Outsource]:
        name = _required_text(name, "外注先名を入力してください", "name")
        return self.update_by_id(
            Outsource, outsource_id, session=session,
            name=name, email=_optional_text(email),
            notes=_optional_text(notes)
        )

    def list_all(self, session: Optional[Session] = None) -> List[Outsource]:
        return self.get_all(Outsource, order_by="name", session=session)
