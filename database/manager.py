"""数据库管理器 —— 统一门面（Facade）。

DatabaseManager 是 database 模块的统一入口，组合了所有子仓库，
提供两套 API：

1. **子仓库访问**（细粒度）：
   通过 ``db.customers``、``db.sales`` 等属性直接访问子仓库。

2. **便捷方法**（粗粒度）：
   提供扁平化的方法（如 ``save_sale()``、``delete_customer()``），
   返回字典/基本类型，适合上层业务代码和命令行调用。
"""
from typing import Optional, List, Dict, Any
from loguru import logger
from sqlalchemy.orm import Session

from config.business_config import business_config
from .cascade import CascadeDeleter, CascadeResult, ConfirmCallback
from .connection import DatabaseConnection
from .entity_repos import (
    CustomerRepository, SaleTypeRepository, OutsourceRepository
)
from .business_repos import (
    SaleRepository, SaleItemRepository, OutsourceCostRepository
)
from .models import Customer, Sale, OutsourceCost


class DatabaseManager:
    """数据库管理器 —— 统一门面。

    Attributes:
        conn: 数据库连接管理器。
        customers: 顾客仓库。
        sale_types: 売上種類仓库。
        outsources: 外注先仓库。
        outsource_costs: 外注コスト仓库。
        sale_items: 売上明細仓库。
        sales: 売上仓库。
        cascade: 级联删除协调器。

    Example::

        db = DatabaseManager("sqlite:///data/sales.db")
        db.create_tables()

        customer = db.customers.create("山田商事")
        sale_id = db.save_sale({
            "customer_id": customer.id,
            "sale_date": "2025-03-05",
            "total_amount": 10000,
        })
        db.delete_customer(customer.id, confirmed=True)
    """

    def __init__(self, database_url: Optional[str] = None,
                 confirm: Optional[ConfirmCallback] = None) -> None:
        """初始化数据库管理器。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
            confirm: 破坏性级联的确认回调（可选）。
        """
        # 基础设施层
        self.conn = DatabaseConnection(database_url)

        # 实体仓库
        self.customers = CustomerRepository(self.conn)
        self.sale_types = SaleTypeRepository(self.conn)
        self.outsources = OutsourceRepository(self.conn)

        # 业务记录仓库
        self.outsource_costs = OutsourceCostRepository(self.conn)
        self.sale_items = SaleItemRepository(self.conn)
        self.sales = SaleRepository(
            self.conn, self.sale_types, self.outsource_costs
        )

        # 级联删除
        self.cascade = CascadeDeleter(
            self.conn, self.sales, self.sale_items,
            self.outsource_costs, self.sale_types, confirm=confirm
        )

    # ================================================================
    # 基础设施方法
    # ================================================================

    def create_tables(self) -> None:
        """创建所有数据库表并写入未分类哨兵（幂等操作）。"""
        self.conn.create_tables()
        sentinel = self.sale_types.ensure_uncategorized(
            business_config.get_uncategorized_name()
        )
        self.cascade.sentinel_id = sentinel.id

    def get_session(self) -> Session:
        """获取数据库会话。"""
        return self.conn.get_session()

    @property
    def database_url(self) -> str:
        """数据库连接URL。"""
        return self.conn.database_url

    @property
    def engine(self):
        """SQLAlchemy 引擎对象。"""
        return self.conn.engine

    def execute_raw_sql(self, sql: str,
                        params: Optional[dict] = None) -> Any:
        """执行原始 SQL 语句。"""
        return self.conn.execute_raw_sql(sql, params)

    def close(self) -> None:
        """关闭数据库连接，释放所有资源。"""
        self.conn.close()

    # ================================================================
    # 便捷写入方法
    # ================================================================

    def save_sale(self, sale_data: Dict[str, Any],
                  sale_id: Optional[int] = None) -> int:
        """新增或更新売上（含外注コスト替换）。

        Args:
            sale_data: 売上数据字典，详见 SaleRepository.save。
            sale_id: 要更新的売上ID，None 表示新建。

        Returns:
            売上ID。
        """
        return self.sales.save(sale_data, sale_id)

    def complete_sale(self, sale_id: int) -> bool:
        """将売上标记为完了。"""
        return self.sales.complete(sale_id)

    def delete_sale(self, sale_id: int) -> CascadeResult:
        """删除売上（明细 → 外注コスト → 売上）。"""
        return self.cascade.delete_sale(sale_id)

    def delete_customer(self, customer_id: int,
                        confirmed: bool = False) -> CascadeResult:
        """删除顾客；有关联売上时需要确认。"""
        return self.cascade.delete_customer(customer_id, confirmed=confirmed)

    def delete_outsource(self, outsource_id: int) -> CascadeResult:
        """删除外注先及其外注コスト。"""
        return self.cascade.delete_outsource(outsource_id)

    def delete_sale_type(self, sale_type_id: int) -> CascadeResult:
        """删除売上種類，关联売上改为未分类。"""
        return self.cascade.delete_sale_type(sale_type_id)

    # ================================================================
    # 便捷查询方法
    # ================================================================

    def get_sale_for_edit(self, sale_id: int) -> Optional[Dict[str, Any]]:
        """获取编辑表单用的売上数据（含单行外注コスト）。

        Returns:
            売上字典，追加 outsource_id / outsource_amount /
            outsource_description；売上不存在返回 None。
        """
        sale = self.sales.get(sale_id)
        if sale is None:
            return None
        cost = self.outsource_costs.get_for_sale(sale_id)
        sale["outsource_id"] = cost["outsource_id"] if cost else None
        sale["outsource_amount"] = cost["amount"] if cost else None
        sale["outsource_description"] = cost["description"] if cost else None
        return sale

    def get_customer_list(self) -> List[Dict[str, Any]]:
        """获取顾客列表（按名称排序）。"""
        return [
            {"id": c.id, "name": c.name, "contact_person": c.contact_person}
            for c in self.customers.list_all()
        ]

    def get_sale_type_list(self) -> List[Dict[str, Any]]:
        """获取売上種類列表（按名称排序）。"""
        return [
            {
                "id": t.id,
                "name": t.name,
                "description": t.description,
                "is_uncategorized": t.is_uncategorized,
            }
            for t in self.sale_types.list_all()
        ]

    def get_outsource_list(self) -> List[Dict[str, Any]]:
        """获取外注先列表（按名称排序）。"""
        return [
            {"id": o.id, "name": o.name, "email": o.email, "notes": o.notes}
            for o in self.outsources.list_all()
        ]

    def log_summary(self) -> None:
        """输出各表行数（调试用）。"""
        logger.info(
            f"customers={self.customers.count(Customer)} "
            f"sales={self.sales.count(Sale)} "
            f"outsource_costs={self.outsource_costs.count(OutsourceCost)}"
        )
