"""SQLAlchemy ORM 模型定义。

本模块定义了所有数据库表的ORM模型，包括：
- 顾客、売上種類、外注先等基础实体
- 売上、売上明細、外注コスト等业务记录
- 级联删除进度日志（cascade_logs）
"""
import enum
from typing import List, Optional
from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime,
    DECIMAL, ForeignKey, CheckConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from datetime import datetime, date

# SQLAlchemy declarative base，所有模型都继承自此类
Base = declarative_base()

# 允许使用旧式类型注解，兼容 SQLAlchemy 2.0
Base.__allow_unmapped__ = True

# 各表主键使用 SQLite AUTOINCREMENT，已删除的ID不会被复用

# 未分类売上種類的稳定标识
UNCATEGORIZED_KEY = "uncategorized"


class SaleStatus(str, enum.Enum):
    """売上ステータス。

    存储值沿用业务上使用的日文标签。
    """
    IN_PROGRESS = "進行中"
    COMPLETED = "完了"
    ON_HOLD = "保留中"
    CANCELLED = "キャンセル"

    @classmethod
    def values(cls) -> List[str]:
        return [s.value for s in cls]


class CascadeStepStatus(str, enum.Enum):
    """级联删除步骤状态"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Customer(Base):
    """顾客表模型。

    Attributes:
        id: 主键，自增整数。
        name: 顾客名称，必填（按惯例唯一，但不做约束）。
        contact_person: 担当者，可选。
        created_at: 创建时间。

    Relationships:
        sales: 该顾客的売上列表。
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    name: str = Column(String(100), nullable=False)
    contact_person: Optional[str] = Column(String(100))
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    sales: List["Sale"] = relationship("Sale", back_populates="customer")


class SaleType(Base):
    """売上種類表模型。

    system_key 为 "uncategorized" 的行是未分类哨兵，初始化时写入，不可删除。
    所有哨兵查找都通过 system_key 进行，与显示名称无关。

    Attributes:
        id: 主键，自增整数。
        name: 种类名称，必填。
        description: 说明，可选。
        system_key: 系统保留标识，唯一，普通种类为 None。
        created_at: 创建时间。
    """
    __tablename__ = "sale_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    name: str = Column(String(100), nullable=False)
    description: Optional[str] = Column(Text)
    system_key: Optional[str] = Column(String(50), unique=True)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    sales: List["Sale"] = relationship("Sale", back_populates="sale_type")

    @property
    def is_uncategorized(self) -> bool:
        return self.system_key == UNCATEGORIZED_KEY


class Outsource(Base):
    """外注先表模型。

    Attributes:
        id: 主键，自增整数。
        name: 外注先名称，必填。
        email: 邮箱，可选。
        notes: 备注，可选。
        created_at: 创建时间。
    """
    __tablename__ = "outsources"
    __table_args__ = {"sqlite_autoincrement": True}

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    name: str = Column(String(100), nullable=False)
    email: Optional[str] = Column(String(255))
    notes: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    costs: List["OutsourceCost"] = relationship(
        "OutsourceCost", back_populates="outsource"
    )


class Sale(Base):
    """売上表模型。

    Attributes:
        id: 主键，自增整数。
        customer_id: 顾客ID，外键，必填。
        user_name: 担当者名（自由文本，非外键）。
        sale_date: 売上日，必填。
        delivery_date: 納品日，可选。
        total_amount: 売上金额，DECIMAL(12,2)，非负。
        sale_status: 状态，见 SaleStatus。
        sale_type_id: 売上種類ID，默认为未分类哨兵。
        source: 来源，可选。
        notes: 备注，可选。
        created_at: 创建时间。
    """
    __tablename__ = "sales"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_sales_total_amount"),
        {"sqlite_autoincrement": True},
    )

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    customer_id: int = Column(
        Integer, ForeignKey("customers.id"), nullable=False
    )
    user_name: Optional[str] = Column(String(100))
    sale_date: date = Column(Date, nullable=False)
    delivery_date: Optional[date] = Column(Date)
    total_amount: float = Column(DECIMAL(12, 2), nullable=False, default=0)
    sale_status: str = Column(
        String(20), nullable=False, default=SaleStatus.COMPLETED.value
    )
    sale_type_id: Optional[int] = Column(
        Integer, ForeignKey("sale_types.id")
    )
    source: Optional[str] = Column(String(255))
    notes: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    customer: "Customer" = relationship("Customer", back_populates="sales")
    sale_type: Optional["SaleType"] = relationship(
        "SaleType", back_populates="sales"
    )
    items: List["SaleItem"] = relationship("SaleItem", back_populates="sale")
    outsource_costs: List["OutsourceCost"] = relationship(
        "OutsourceCost", back_populates="sale"
    )


class SaleItem(Base):
    """売上明細表模型。

    Attributes:
        id: 主键。
        sale_id: 売上ID，外键。
        description: 明细说明。
        quantity: 数量，默认1。
        unit_price: 单价，可选。
        amount: 金额。
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    sale_id: int = Column(Integer, ForeignKey("sales.id"), nullable=False)
    description: Optional[str] = Column(String(255))
    quantity: int = Column(Integer, default=1)
    unit_price: Optional[float] = Column(DECIMAL(12, 2))
    amount: float = Column(DECIMAL(12, 2), default=0)

    sale: "Sale" = relationship("Sale", back_populates="items")


class OutsourceCost(Base):
    """外注コスト表模型。

    表结构允许一个売上对应多行；读取路径按"一売上一行"使用，
    汇总时一律求和。

    Attributes:
        id: 主键。
        sale_id: 売上ID，外键。
        outsource_id: 外注先ID，外键。
        amount: 成本金额，非负。
        description: 说明，可选。
        created_at: 创建时间。
    """
    __tablename__ = "outsource_costs"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_outsource_costs_amount"),
        {"sqlite_autoincrement": True},
    )

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    sale_id: int = Column(Integer, ForeignKey("sales.id"), nullable=False)
    outsource_id: int = Column(
        Integer, ForeignKey("outsources.id"), nullable=False
    )
    amount: float = Column(DECIMAL(12, 2), nullable=False, default=0)
    description: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    sale: "Sale" = relationship("Sale", back_populates="outsource_costs")
    outsource: "Outsource" = relationship(
        "Outsource", back_populates="costs"
    )


class CascadeLog(Base):
    """级联删除进度日志。

    每个已执行的步骤一行，用于在部分失败后重试时跳过已完成的步骤。

    Attributes:
        operation: 操作名（delete_sale / delete_customer 等）。
        entity_type: 目标实体类型。
        entity_id: 目标实体ID。
        step_index: 步骤序号（从0开始）。
        step_name: 步骤名称。
        status: succeeded / failed。
        error: 失败时的错误信息。
    """
    __tablename__ = "cascade_logs"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    operation: str = Column(String(50), nullable=False)
    entity_type: str = Column(String(50), nullable=False)
    entity_id: int = Column(Integer, nullable=False)
    step_index: int = Column(Integer, nullable=False)
    step_name: str = Column(String(100), nullable=False)
    status: str = Column(String(20), nullable=False)
    error: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)
    updated_at: datetime = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
