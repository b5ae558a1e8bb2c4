"""业务记录仓库 —— 核心业务数据的数据访问层。

管理系统中的核心业务记录（売上、売上明細、外注コスト），
这些记录是日常经营活动产生的交易数据。

读取方法返回字典（含顾客名、売上種類名等关联字段），
便于直接交给汇总引擎和展示层使用。
"""
import math
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Dict, Any, Iterable
from datetime import date, datetime
from loguru import logger
from sqlalchemy.orm import Session, joinedload

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .entity_repos import SaleTypeRepository
from .exceptions import ValidationError, SentinelMissingError
from .models import (
    Sale, SaleItem, OutsourceCost, Customer, SaleStatus
)

SORTABLE_FIELDS = (
    "sale_date", "delivery_date", "total_amount", "sale_status",
    "customer_id", "sale_type_id", "created_at", "id",
)


def sale_to_dict(sale: Sale) -> Dict[str, Any]:
    """将 Sale 对象转换为字典（需在会话内调用以加载关联）。"""
    return {
        "id": sale.id,
        "customer_id": sale.customer_id,
        "customer_name": sale.customer.name if sale.customer else None,
        "user_name": sale.user_name,
        "sale_date": sale.sale_date,
        "delivery_date": sale.delivery_date,
        "total_amount": sale.total_amount,
        "sale_status": sale.sale_status,
        "sale_type_id": sale.sale_type_id,
        "sale_type_name": sale.sale_type.name if sale.sale_type else None,
        "source": sale.source,
        "notes": sale.notes,
    }


def cost_to_dict(cost: OutsourceCost) -> Dict[str, Any]:
    """将 OutsourceCost 对象转换为字典。"""
    return {
        "id": cost.id,
        "sale_id": cost.sale_id,
        "outsource_id": cost.outsource_id,
        "outsource_name": cost.outsource.name if cost.outsource else None,
        "amount": cost.amount,
        "description": cost.description,
        "created_at": cost.created_at,
    }


class SaleItemRepository(BaseCRUD):
    """売上明細 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def add(self, sale_id: int, description: Optional[str] = None,
            quantity: int = 1, unit_price: Optional[float] = None,
            amount: Optional[float] = None,
            session: Optional[Session] = None) -> int:
        """为売上追加明细行。

        金额未给出时按 数量 × 单价 计算。

        Returns:
            新建明细ID。
        """
        if amount is None:
            amount = (unit_price or 0) * quantity
        with self._scope(session, "insert sale_items") as sess:
            item = SaleItem(
                sale_id=sale_id, description=description,
                quantity=quantity, unit_price=unit_price, amount=amount
            )
            sess.add(item)
            sess.flush()
            return item.id

    def list_for_sale(self, sale_id: int,
                      session: Optional[Session] = None) -> List[SaleItem]:
        return self.get_all(
            SaleItem, filters={"sale_id": sale_id}, order_by="id",
            session=session
        )

    def delete_for_sale(self, sale_id: int,
                        session: Optional[Session] = None) -> int:
        """删除売上的全部明细，返回删除行数。"""
        return self.delete_where(
            SaleItem, {"sale_id": sale_id}, session=session
        )


class OutsourceCostRepository(BaseCRUD):
    """外注コスト 仓库。

    表结构允许一个売上对应多行外注コスト。单行读取（get_for_sale）
    只返回第一行，汇总一律使用 list_for_sales 后求和。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_for_sale(self, sale_id: int,
                     session: Optional[Session] = None
                     ) -> Optional[Dict[str, Any]]:
        """获取売上的外注コスト（编辑表单用的单行读取）。

        Returns:
            外注コスト字典，不存在返回 None。
        """
        with self._scope(session, "get outsource_costs") as sess:
            costs = sess.query(OutsourceCost).options(
                joinedload(OutsourceCost.outsource)
            ).filter(
                OutsourceCost.sale_id == sale_id
            ).order_by(OutsourceCost.id).all()
            if not costs:
                return None
            if len(costs) > 1:
                logger.warning(
                    f"Sale {sale_id} has {len(costs)} outsource cost rows; "
                    f"edit form shows the first only"
                )
            return cost_to_dict(costs[0])

    def list_for_sales(self, sale_ids: Iterable[int],
                       session: Optional[Session] = None
                       ) -> List[Dict[str, Any]]:
        """按売上ID列表获取外注コスト（IN 查询）。"""
        sale_ids = list(sale_ids)
        if not sale_ids:
            return []
        with self._scope(session, "list outsource_costs") as sess:
            costs = sess.query(OutsourceCost).options(
                joinedload(OutsourceCost.outsource)
            ).filter(
                OutsourceCost.sale_id.in_(sale_ids)
            ).order_by(OutsourceCost.id).all()
            return [cost_to_dict(c) for c in costs]

    def list_with_sales(self, session: Optional[Session] = None
                        ) -> List[Dict[str, Any]]:
        """获取全部外注コスト及其売上、顾客信息，按创建时间倒序。"""
        with self._scope(session, "list outsource_costs") as sess:
            costs = sess.query(OutsourceCost).options(
                joinedload(OutsourceCost.outsource),
                joinedload(OutsourceCost.sale).joinedload(Sale.customer),
            ).order_by(
                OutsourceCost.created_at.desc(), OutsourceCost.id.desc()
            ).all()
            rows = []
            for c in costs:
                row = cost_to_dict(c)
                row["sale_date"] = c.sale.sale_date if c.sale else None
                row["sale_total_amount"] = (
                    c.sale.total_amount if c.sale else None
                )
                row["customer_name"] = (
                    c.sale.customer.name
                    if c.sale and c.sale.customer else None
                )
                rows.append(row)
            return rows

    def replace_for_sale(self, sale_id: int,
                         outsource_id: Optional[int],
                         amount: Optional[Decimal],
                         description: Optional[str] = None,
                         session: Optional[Session] = None
                         ) -> Optional[int]:
        """替换売上的外注コスト。

        先删除该売上的全部外注コスト，再在 outsource_id 与正数金额
        同时给出时插入一行。

        Returns:
            新建的外注コストID，未插入返回 None。
        """
        with self._scope(session, "replace outsource_costs") as sess:
            sess.query(OutsourceCost).filter(
                OutsourceCost.sale_id == sale_id
            ).delete(synchronize_session=False)
            if not outsource_id or not amount or amount <= 0:
                return None
            cost = OutsourceCost(
                sale_id=sale_id, outsource_id=outsource_id,
                amount=amount, description=description
            )
            sess.add(cost)
            sess.flush()
            return cost.id

    def delete_for_sale(self, sale_id: int,
                        session: Optional[Session] = None) -> int:
        return self.delete_where(
            OutsourceCost, {"sale_id": sale_id}, session=session
        )

    def delete_for_outsource(self, outsource_id: int,
                             session: Optional[Session] = None) -> int:
        return self.delete_where(
            OutsourceCost, {"outsource_id": outsource_id}, session=session
        )


class SaleRepository(BaseCRUD):
    """売上 仓库。

    保存売上时同时处理外注コスト（先写売上，再替换外注コスト），
    売上種類缺省时使用未分类哨兵。
    """

    def __init__(self, conn: DatabaseConnection,
                 sale_type_repo: SaleTypeRepository,
                 cost_repo: OutsourceCostRepository) -> None:
        super().__init__(conn)
        self._sale_types = sale_type_repo
        self._costs = cost_repo

    def save(self, sale_data: Dict[str, Any],
             sale_id: Optional[int] = None) -> int:
        """新增或更新売上，并替换其外注コスト。

        Args:
            sale_data: 売上数据字典，支持以下键：
                - customer_id: 顾客ID（必填）
                - sale_date: 売上日，YYYY-MM-DD 或 date 对象（必填）
                - total_amount: 売上金额（必填，非负数字）
                - delivery_date: 納品日（可选）
                - user_name: 担当者名（可选）
                - sale_status: 状态（可选，新建默认"完了"）
                - sale_type_id: 売上種類ID（可选，默认未分类）
                - source: 来源（可选）
                - notes: 备注（可选）
                - outsource_id: 外注先ID（可选）
                - outsource_amount: 外注金额（可选）
                - outsource_description: 外注说明（可选）
            sale_id: 要更新的売上ID，None 表示新建。

        Returns:
            売上ID。

        Raises:
            ValidationError: 必填项缺失或金额不是数字。
            SentinelMissingError: 未指定売上種類且未分类哨兵不存在。
        """
        values = self._validate(sale_data, is_update=sale_id is not None)
        outsource_amount = self._parse_amount(
            sale_data.get("outsource_amount"), "outsource_amount",
            required=False
        )
        outsource_id = self._parse_id(
            sale_data.get("outsource_id"), "outsource_id"
        )

        with self._scope(action="save sales") as session:
            if values["sale_type_id"] is None:
                sentinel = self._sale_types.get_uncategorized(session=session)
                if sentinel is None:
                    raise SentinelMissingError(
                        "未分類の種類が見つかりません"
                    )
                values["sale_type_id"] = sentinel.id

            if sale_id is None:
                sale = Sale(**values)
                session.add(sale)
                session.flush()
                logger.info(f"Created sale {sale.id}")
            else:
                sale = session.get(Sale, sale_id)
                if sale is None:
                    raise ValidationError(
                        f"Sale {sale_id} not found", field="id"
                    )
                for key, value in values.items():
                    setattr(sale, key, value)
                session.flush()
                logger.info(f"Updated sale {sale.id}")

            self._costs.replace_for_sale(
                sale.id,
                outsource_id or None,
                outsource_amount,
                sale_data.get("outsource_description"),
                session=session,
            )
            return sale.id

    def get(self, sale_id: int,
            session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
        """获取单个売上（字典），不存在返回 None。"""
        with self._scope(session, "get sales") as sess:
            sale = self._base_query(sess).filter(Sale.id == sale_id).first()
            return sale_to_dict(sale) if sale else None

    def list_between(self, start: date, end: date,
                     session: Optional[Session] = None
                     ) -> List[Dict[str, Any]]:
        """获取売上日在 [start, end] 内的売上，按売上日升序。"""
        with self._scope(session, "list sales") as sess:
            sales = self._base_query(sess).filter(
                Sale.sale_date >= start, Sale.sale_date <= end
            ).order_by(Sale.sale_date, Sale.id).all()
            return [sale_to_dict(s) for s in sales]

    def list_page(self, filters: Optional[Dict[str, Any]] = None,
                  page: int = 1, per_page: int = 10,
                  sort_field: str = "sale_date", sort_order: str = "desc",
                  session: Optional[Session] = None) -> Dict[str, Any]:
        """分页查询売上。

        Args:
            filters: 过滤条件字典，支持以下键（均可选）：
                - start_date / end_date: 売上日范围
                - start_delivery_date / end_delivery_date: 納品日范围
                - customer_name: 顾客名部分匹配（不区分大小写）
                - sale_type_id: 売上種類ID
                - min_amount / max_amount: 金额范围
                - status: 状态
            page: 页码（从1开始）。
            per_page: 每页条数。
            sort_field: 排序字段。
            sort_order: asc / desc。

        Returns:
            字典：rows、total_count、total_pages、page。
        """
        filters = filters or {}
        if sort_field not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Unsupported sort field: {sort_field}", field="sort_field"
            )
        page = max(1, int(page))

        with self._scope(session, "list sales") as sess:
            query = self._base_query(sess)

            if filters.get("start_date"):
                query = query.filter(Sale.sale_date >= self._parse_date(
                    filters["start_date"], "start_date"))
            if filters.get("end_date"):
                query = query.filter(Sale.sale_date <= self._parse_date(
                    filters["end_date"], "end_date"))
            if filters.get("start_delivery_date"):
                query = query.filter(Sale.delivery_date >= self._parse_date(
                    filters["start_delivery_date"], "start_delivery_date"))
            if filters.get("end_delivery_date"):
                query = query.filter(Sale.delivery_date <= self._parse_date(
                    filters["end_delivery_date"], "end_delivery_date"))
            if filters.get("sale_type_id"):
                query = query.filter(
                    Sale.sale_type_id == filters["sale_type_id"]
                )
            if filters.get("min_amount") not in (None, ""):
                query = query.filter(Sale.total_amount >= self._parse_amount(
                    filters["min_amount"], "min_amount"))
            if filters.get("max_amount") not in (None, ""):
                query = query.filter(Sale.total_amount <= self._parse_amount(
                    filters["max_amount"], "max_amount"))
            if filters.get("status"):
                query = query.filter(Sale.sale_status == filters["status"])
            if filters.get("customer_name"):
                customer_ids = [
                    c.id for c in sess.query(Customer.id).filter(
                        Customer.name.ilike(f"%{filters['customer_name']}%")
                    ).all()
                ]
                if not customer_ids:
                    return {
                        "rows": [], "total_count": 0,
                        "total_pages": 0, "page": page,
                    }
                query = query.filter(Sale.customer_id.in_(customer_ids))

            total_count = query.count()
            column = getattr(Sale, sort_field)
            ordering = column.asc() if sort_order == "asc" else column.desc()
            sales = query.order_by(ordering, Sale.id.desc()).offset(
                (page - 1) * per_page
            ).limit(per_page).all()

            return {
                "rows": [sale_to_dict(s) for s in sales],
                "total_count": total_count,
                "total_pages": math.ceil(total_count / per_page),
                "page": page,
            }

    def in_progress(self, session: Optional[Session] = None
                    ) -> List[Dict[str, Any]]:
        """获取进行中的売上，按納品日升序（无納品日排在最后）。"""
        with self._scope(session, "list sales") as sess:
            sales = self._base_query(sess).filter(
                Sale.sale_status == SaleStatus.IN_PROGRESS.value
            ).order_by(
                Sale.delivery_date.is_(None), Sale.delivery_date, Sale.id
            ).all()
            return [sale_to_dict(s) for s in sales]

    def recent(self, limit: int = 5,
               session: Optional[Session] = None) -> List[Dict[str, Any]]:
        """获取最近的売上（按売上日倒序）。"""
        with self._scope(session, "list sales") as sess:
            sales = self._base_query(sess).order_by(
                Sale.sale_date.desc(), Sale.id.desc()
            ).limit(limit).all()
            return [sale_to_dict(s) for s in sales]

    def complete(self, sale_id: int,
                 session: Optional[Session] = None) -> bool:
        """将売上标记为完了。

        Returns:
            是否找到并更新了売上。
        """
        result = self.update_by_id(
            Sale, sale_id, session=session,
            sale_status=SaleStatus.COMPLETED.value
        )
        if result is not None:
            logger.info(f"Marked sale {sale_id} as completed")
        return result is not None

    def ids_for_customer(self, customer_id: int,
                         session: Optional[Session] = None) -> List[int]:
        with self._scope(session, "list sales") as sess:
            return [
                row.id for row in sess.query(Sale.id).filter(
                    Sale.customer_id == customer_id
                ).order_by(Sale.id).all()
            ]

    def delete_for_customer(self, customer_id: int,
                            session: Optional[Session] = None) -> int:
        return self.delete_where(
            Sale, {"customer_id": customer_id}, session=session
        )

    def reassign_sale_type(self, from_type_id: int, to_type_id: int,
                           session: Optional[Session] = None) -> int:
        """把引用 from_type_id 的売上改为引用 to_type_id。"""
        return self.update_where(
            Sale, {"sale_type_id": from_type_id},
            {"sale_type_id": to_type_id}, session=session
        )

    @staticmethod
    def _base_query(sess: Session):
        return sess.query(Sale).options(
            joinedload(Sale.customer), joinedload(Sale.sale_type)
        )

    def _validate(self, sale_data: Dict[str, Any],
                  is_update: bool) -> Dict[str, Any]:
        """校验表单数据并转换为 Sale 字段值。"""
        customer_id = sale_data.get("customer_id")
        if not customer_id or not sale_data.get("sale_date") \
                or sale_data.get("total_amount") in (None, ""):
            raise ValidationError("必須項目を入力してください")

        status = sale_data.get("sale_status") or (
            SaleStatus.IN_PROGRESS.value if is_update
            else SaleStatus.COMPLETED.value
        )
        if isinstance(status, SaleStatus):
            status = status.value
        if status not in SaleStatus.values():
            raise ValidationError(
                f"Invalid sale status: {status}", field="sale_status"
            )

        delivery_date = None
        if sale_data.get("delivery_date"):
            delivery_date = self._parse_date(
                sale_data["delivery_date"], "delivery_date"
            )

        return {
            "customer_id": self._parse_id(customer_id, "customer_id"),
            "user_name": sale_data.get("user_name"),
            "sale_date": self._parse_date(sale_data["sale_date"], "sale_date"),
            "delivery_date": delivery_date,
            "total_amount": self._parse_amount(
                sale_data["total_amount"], "total_amount"
            ),
            "sale_status": status,
            "sale_type_id": self._parse_id(
                sale_data.get("sale_type_id"), "sale_type_id"
            ) or None,
            "source": sale_data.get("source"),
            "notes": sale_data.get("notes"),
        }

    @staticmethod
    def _parse_id(value: Any, field_name: str) -> Optional[int]:
        """解析ID，空值返回 None。

        Raises:
            ValidationError: 不是整数。
        """
        if value is None or value == "":
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Invalid {field_name}: {value}", field=field_name
            )

    @staticmethod
    def _parse_date(date_value: Any, field_name: str = "date") -> date:
        """解析日期值。

        Args:
            date_value: 日期值（str、date 或 datetime 对象）。
            field_name: 字段名称（用于错误提示）。

        Returns:
            date 对象（去除时刻部分）。

        Raises:
            ValidationError: 格式无效或缺失。
        """
        if isinstance(date_value, datetime):
            return date_value.date()
        if isinstance(date_value, date):
            return date_value
        if isinstance(date_value, str) and date_value:
            try:
                return datetime.strptime(
                    date_value.split("T")[0], "%Y-%m-%d"
                ).date()
            except ValueError:
                raise ValidationError(
                    f"Invalid date format: {date_value}, "
                    f"expected YYYY-MM-DD", field=field_name
                )
        raise ValidationError(f"{field_name} is required", field=field_name)

    @staticmethod
    def _parse_amount(value: Any, field_name: str,
                      required: bool = True) -> Optional[Decimal]:
        """解析非负金额。

        Raises:
            ValidationError: 非数字或为负数。
        """
        if value is None or value == "":
            if required:
                raise ValidationError(
                    f"{field_name} is required", field=field_name
                )
            return None
        try:
            amount = Decimal(str(value).replace(",", ""))
        except InvalidOperation:
            raise ValidationError(
                f"{field_name} must be a number", field=field_name
            )
        if not amount.is_finite() or amount < 0:
            raise ValidationError(
                f"{field_name} must be a non-negative number",
                field=field_name
            )
        return amount
