"""级联删除协调器。

删除被其他行依赖的实体时，按固定顺序先删除依赖行，再删除所属行。
每个级联被表示为一个有序的步骤列表，每一步都是按条件删除/更新，
重复执行是安全的。

每一步的结果写入 cascade_logs：同一 (operation, entity_type, entity_id)
再次执行时会跳过已成功的步骤，从失败处继续。这里没有补偿/回滚，
部分失败后已完成的步骤保持生效。

确认门：删除带有売上的顾客需要显式确认（confirm 回调或 confirmed=True），
否则在发出任何删除之前抛出 ConfirmationRequired。
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from loguru import logger

from .base_crud import BaseCRUD
from .business_repos import (
    SaleRepository, SaleItemRepository, OutsourceCostRepository
)
from .connection import DatabaseConnection
from .entity_repos import SaleTypeRepository
from .exceptions import (
    CascadeStepError, ConfirmationRequired, DataStoreError,
    PreconditionError, SentinelMissingError
)
from .models import (
    CascadeLog, CascadeStepStatus, Customer, Outsource, Sale, SaleType
)

# 确认回调：接收提示文本和依赖数量，返回是否继续
ConfirmCallback = Callable[[str, int], bool]


@dataclass
class CascadeStep:
    """级联中的一个步骤。

    Attributes:
        name: 步骤名称（写入日志与错误信息）。
        action: 执行函数，返回受影响的行数。
    """
    name: str
    action: Callable[[], int]


@dataclass
class CascadeResult:
    """级联执行结果。"""
    operation: str
    entity_id: int
    steps_run: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    affected: int = 0


class CascadeDeleter(BaseCRUD):
    """级联删除协调器。

    Example::

        deleter = CascadeDeleter(conn, sales, items, costs, sale_types)
        deleter.delete_sale(12)
        deleter.delete_customer(3, confirmed=True)
    """

    def __init__(self, conn: DatabaseConnection,
                 sale_repo: SaleRepository,
                 item_repo: SaleItemRepository,
                 cost_repo: OutsourceCostRepository,
                 sale_type_repo: SaleTypeRepository,
                 confirm: Optional[ConfirmCallback] = None) -> None:
        super().__init__(conn)
        self._sales = sale_repo
        self._items = item_repo
        self._costs = cost_repo
        self._sale_types = sale_type_repo
        self.confirm = confirm
        # 未分类哨兵ID，由 DatabaseManager 初始化时写入
        self.sentinel_id: Optional[int] = None

    # ================================================================
    # 级联操作
    # ================================================================

    def delete_sale(self, sale_id: int) -> CascadeResult:
        """删除売上：売上明細 → 外注コスト → 売上。"""
        steps = self._sale_dependent_steps(sale_id) + [
            CascadeStep(
                f"sales[{sale_id}]",
                lambda: int(self.delete_by_id(Sale, sale_id)),
            ),
        ]
        return self._run("delete_sale", "sale", sale_id, steps)

    def delete_customer(self, customer_id: int,
                        confirmed: bool = False) -> CascadeResult:
        """删除顾客及其全部売上。

        没有关联売上时直接删除顾客；有 N 件时需要确认，确认后对每个
        売上删除明细与外注コスト，然后批量删除売上，最后删除顾客。

        Args:
            customer_id: 顾客ID。
            confirmed: 调用方已确认（跳过 confirm 回调）。

        Raises:
            ConfirmationRequired: 有关联売上且未确认。
            CascadeStepError: 某一步失败，后续步骤未执行。
        """
        sale_ids = self._sales.ids_for_customer(customer_id)
        logger.info(
            f"Customer {customer_id} has {len(sale_ids)} related sales"
        )

        steps: List[CascadeStep] = []
        if sale_ids:
            message = (
                f"この顧客に関連する売上データが{len(sale_ids)}件あります。"
                f"すべて削除しますか？"
            )
            if not confirmed and not self._ask(message, len(sale_ids)):
                raise ConfirmationRequired(message, len(sale_ids))
            for sale_id in sale_ids:
                steps.extend(self._sale_dependent_steps(sale_id))
            steps.append(CascadeStep(
                f"sales[customer_id={customer_id}]",
                lambda: self._sales.delete_for_customer(customer_id),
            ))

        steps.append(CascadeStep(
            f"customers[{customer_id}]",
            lambda: int(self.delete_by_id(Customer, customer_id)),
        ))
        result = self._run("delete_customer", "customer", customer_id, steps)
        # 这些売上已删除，清除它们未完成的 delete_sale 进度
        for sale_id in sale_ids:
            self.clear_log("delete_sale", "sale", sale_id)
        return result

    def delete_outsource(self, outsource_id: int) -> CascadeResult:
        """删除外注先：外注コスト → 外注先。"""
        steps = [
            CascadeStep(
                f"outsource_costs[outsource_id={outsource_id}]",
                lambda: self._costs.delete_for_outsource(outsource_id),
            ),
            CascadeStep(
                f"outsources[{outsource_id}]",
                lambda: int(self.delete_by_id(Outsource, outsource_id)),
            ),
        ]
        return self._run("delete_outsource", "outsource", outsource_id, steps)

    def delete_sale_type(self, sale_type_id: int) -> CascadeResult:
        """删除売上種類：引用它的売上改为未分类 → 删除种类。

        哨兵ID已缓存时（初始化后），删除哨兵在不访问数据库的情况下被拒绝。

        Raises:
            PreconditionError: 目标是未分类哨兵（不发出任何写入）。
            SentinelMissingError: 未分类哨兵不存在。
        """
        if self.sentinel_id is not None and sale_type_id == self.sentinel_id:
            raise PreconditionError("「未分類」は削除できません")

        sentinel = self._sale_types.get_uncategorized()
        if sentinel is None:
            raise SentinelMissingError("未分類の種類が見つかりません")
        self.sentinel_id = sentinel.id
        if sale_type_id == sentinel.id:
            raise PreconditionError(f"「{sentinel.name}」は削除できません")
        sentinel_id = sentinel.id

        steps = [
            CascadeStep(
                f"sales[sale_type_id={sale_type_id}]->{sentinel_id}",
                lambda: self._sales.reassign_sale_type(
                    sale_type_id, sentinel_id
                ),
            ),
            CascadeStep(
                f"sale_types[{sale_type_id}]",
                lambda: int(self.delete_by_id(SaleType, sale_type_id)),
            ),
        ]
        return self._run("delete_sale_type", "sale_type", sale_type_id, steps)

    # ================================================================
    # 进度日志
    # ================================================================

    def completed_steps(self, operation: str, entity_type: str,
                        entity_id: int) -> List[str]:
        """返回该级联已成功的步骤名称（按序号）。"""
        with self._scope(action="list cascade_logs") as sess:
            logs = sess.query(CascadeLog).filter(
                CascadeLog.operation == operation,
                CascadeLog.entity_type == entity_type,
                CascadeLog.entity_id == entity_id,
                CascadeLog.status == CascadeStepStatus.SUCCEEDED.value,
            ).order_by(CascadeLog.step_index).all()
            return [log.step_name for log in logs]

    def clear_log(self, operation: str, entity_type: str,
                  entity_id: int) -> int:
        """清除该级联的进度日志。"""
        return self.delete_where(CascadeLog, {
            "operation": operation,
            "entity_type": entity_type,
            "entity_id": entity_id,
        })

    # ================================================================
    # 内部方法
    # ================================================================

    def _sale_dependent_steps(self, sale_id: int) -> List[CascadeStep]:
        return [
            CascadeStep(
                f"sale_items[sale_id={sale_id}]",
                lambda: self._items.delete_for_sale(sale_id),
            ),
            CascadeStep(
                f"outsource_costs[sale_id={sale_id}]",
                lambda: self._costs.delete_for_sale(sale_id),
            ),
        ]

    def _ask(self, message: str, count: int) -> bool:
        if self.confirm is None:
            return False
        return bool(self.confirm(message, count))

    def _run(self, operation: str, entity_type: str, entity_id: int,
             steps: List[CascadeStep]) -> CascadeResult:
        """依次执行步骤，遇到第一个失败即停止。

        已在 cascade_logs 中记为成功的同名步骤会被跳过。
        全部成功后清除该级联的进度日志。
        """
        result = CascadeResult(operation=operation, entity_id=entity_id)
        done = set(self.completed_steps(operation, entity_type, entity_id))

        for index, step in enumerate(steps):
            if step.name in done:
                logger.info(
                    f"{operation}({entity_id}) step {index + 1}/{len(steps)}"
                    f" '{step.name}' already done, skipping"
                )
                result.skipped.append(step.name)
                continue

            logger.info(
                f"{operation}({entity_id}) step {index + 1}/{len(steps)}:"
                f" {step.name}"
            )
            try:
                affected = step.action()
            except DataStoreError as e:
                logger.error(
                    f"{operation}({entity_id}) failed at '{step.name}': {e}"
                )
                try:
                    self._record(operation, entity_type, entity_id, index,
                                 step.name, CascadeStepStatus.FAILED, str(e))
                except DataStoreError as log_error:
                    logger.warning(
                        f"Could not record failure of '{step.name}': {log_error}"
                    )
                raise CascadeStepError(
                    operation, step.name, index, entity_id, e
                ) from e

            self._record(operation, entity_type, entity_id, index,
                         step.name, CascadeStepStatus.SUCCEEDED)
            result.steps_run.append(step.name)
            result.affected += affected or 0

        self.clear_log(operation, entity_type, entity_id)
        logger.info(
            f"{operation}({entity_id}) finished: {len(result.steps_run)} run,"
            f" {len(result.skipped)} skipped"
        )
        return result

    def _record(self, operation: str, entity_type: str, entity_id: int,
                step_index: int, step_name: str,
                status: CascadeStepStatus,
                error: Optional[str] = None) -> None:
        with self._scope(action="write cascade_logs") as sess:
            sess.add(CascadeLog(
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                step_index=step_index,
                step_name=step_name,
                status=status.value,
                error=error,
            ))
