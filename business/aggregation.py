"""売上汇总引擎。

把从数据库取出的売上行和外注コスト行（均为字典）汇总为：
- 期间合计（売上、外注費、利益、件数）
- 按维度的内訳（売上種類、顾客、外注先），按金额降序
- 日历分桶（按月 12 个、按日 当月天数个），无数据的桶为 0
- 单个売上的外注費与利益标注

利益始终定义为 売上合计 - 外注費合计。金额缺失按 0 处理，不抛异常。
外注コスト按 sale_id 关联到売上，同一売上有多行时一律求和。

本模块只包含纯函数，不访问数据库。占位名称取自 business_config。
"""
import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import (
    Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
)

from config.business_config import business_config
from database.models import SaleStatus

UNCATEGORIZED_LABEL = business_config.get_uncategorized_name()
UNKNOWN_LABEL = business_config.get_unknown_label()
IN_PROGRESS = SaleStatus.IN_PROGRESS.value
TOP_CUSTOMERS = 5

Row = Mapping[str, Any]


@dataclass
class PeriodTotals:
    """期间合计。"""
    total_sales: Decimal = Decimal(0)
    total_outsource_cost: Decimal = Decimal(0)
    total_profit: Decimal = Decimal(0)
    count: int = 0

    @property
    def outsource_ratio(self) -> float:
        """外注費占売上的百分比。"""
        return percentage(self.total_outsource_cost, self.total_sales)

    @property
    def profit_ratio(self) -> float:
        """利益占売上的百分比。"""
        return percentage(self.total_profit, self.total_sales)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_sales": self.total_sales,
            "total_outsource_cost": self.total_outsource_cost,
            "total_profit": self.total_profit,
            "count": self.count,
            "outsource_ratio": self.outsource_ratio,
            "profit_ratio": self.profit_ratio,
        }


@dataclass
class BreakdownEntry:
    """内訳中的一项。

    Attributes:
        ratio: 占该内訳全部金额的百分比（截取前 N 项之前计算）。
    """
    key: str
    amount: Decimal = Decimal(0)
    ratio: float = 0.0


@dataclass
class CalendarBucket:
    """日历分桶。

    Attributes:
        index: 内部序号（月份 0-11，日期为 日-1）。
        label: 显示值（月份 1-12，或当月第几日）。
        day: 按日分桶时对应的日期。
    """
    index: int
    label: int
    sales: Decimal = Decimal(0)
    outsource_cost: Decimal = Decimal(0)
    day: Optional[date] = None

    @property
    def profit(self) -> Decimal:
        return self.sales - self.outsource_cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "label": self.label,
            "day": self.day,
            "sales": self.sales,
            "outsource_cost": self.outsource_cost,
            "profit": self.profit,
        }


@dataclass
class OutsourceCostGroup:
    """外注先别的外注コスト汇总。"""
    outsource_id: Optional[int]
    name: str
    total_cost: Decimal = Decimal(0)
    sales: List[Dict[str, Any]] = field(default_factory=list)


# ================================================================
# 基础工具
# ================================================================

def to_amount(value: Any) -> Decimal:
    """把金额转换为 Decimal，None/空/无法解析时为 0。"""
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)


def to_date(value: Any) -> Optional[date]:
    """把 date/datetime/ISO 字符串转换为日历日期（去掉时刻）。"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).split("T")[0], "%Y-%m-%d").date()


def percentage(part: Any, whole: Any) -> float:
    """百分比（保留1位小数），分母为 0 时返回 0。"""
    whole = to_amount(whole)
    if whole == 0:
        return 0.0
    return round(float(to_amount(part) / whole * 100), 1)


def month_range(year: int, month: int) -> Tuple[date, date]:
    """返回某月的第一天和最后一天。"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def year_range(year: int) -> Tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def in_scope(sale: Row, start: Optional[date] = None,
             end: Optional[date] = None) -> bool:
    """売上日是否落在 [start, end] 内，边界为空表示不限。"""
    sale_date = to_date(sale.get("sale_date"))
    if sale_date is None:
        return start is None and end is None
    if start is not None and sale_date < start:
        return False
    if end is not None and sale_date > end:
        return False
    return True


# ================================================================
# 外注コスト关联
# ================================================================

def cost_by_sale(costs: Iterable[Row]) -> Dict[Any, Decimal]:
    """按 sale_id 汇总外注コスト。"""
    totals: Dict[Any, Decimal] = {}
    for cost in costs:
        sale_id = cost.get("sale_id")
        totals[sale_id] = totals.get(sale_id, Decimal(0)) + to_amount(
            cost.get("amount")
        )
    return totals


def find_multi_cost_sales(costs: Iterable[Row]) -> List[Any]:
    """返回拥有多于一行外注コスト的 sale_id（按首次出现顺序）。"""
    seen: Dict[Any, int] = {}
    for cost in costs:
        sale_id = cost.get("sale_id")
        seen[sale_id] = seen.get(sale_id, 0) + 1
    return [sale_id for sale_id, n in seen.items() if n > 1]


def annotate_sales(sales: Iterable[Row],
                   costs: Iterable[Row]) -> List[Dict[str, Any]]:
    """为每个売上附加外注コスト明细、外注費合计与利益。

    Returns:
        新的字典列表，原行不被修改。追加的键：
        outsource_costs（该売上的外注コスト行列表）、
        outsource_cost_total、profit。
    """
    by_sale: Dict[Any, List[Row]] = {}
    for cost in costs:
        by_sale.setdefault(cost.get("sale_id"), []).append(cost)

    annotated = []
    for sale in sales:
        sale_costs = by_sale.get(sale.get("id"), [])
        cost_total = sum(
            (to_amount(c.get("amount")) for c in sale_costs), Decimal(0)
        )
        row = dict(sale)
        row["outsource_costs"] = [dict(c) for c in sale_costs]
        row["outsource_cost_total"] = cost_total
        row["profit"] = to_amount(sale.get("total_amount")) - cost_total
        annotated.append(row)
    return annotated


# ================================================================
# 合计与内訳
# ================================================================

def period_totals(sales: Iterable[Row], costs: Iterable[Row],
                  start: Optional[date] = None,
                  end: Optional[date] = None) -> PeriodTotals:
    """计算期间合计。

    只有 sale_id 属于范围内売上的外注コスト才计入外注費。

    Args:
        sales: 売上行。
        costs: 外注コスト行。
        start: 起始日（含），None 表示不限。
        end: 结束日（含），None 表示不限。

    Returns:
        PeriodTotals。
    """
    scoped = [s for s in sales if in_scope(s, start, end)]
    sale_ids = {s.get("id") for s in scoped}

    total_sales = sum(
        (to_amount(s.get("total_amount")) for s in scoped), Decimal(0)
    )
    total_cost = sum(
        (to_amount(c.get("amount")) for c in costs
         if c.get("sale_id") in sale_ids),
        Decimal(0)
    )
    return PeriodTotals(
        total_sales=total_sales,
        total_outsource_cost=total_cost,
        total_profit=total_sales - total_cost,
        count=len(scoped),
    )


def group_breakdown(rows: Iterable[Row],
                    key_fn: Callable[[Row], Optional[str]],
                    amount_fn: Callable[[Row], Any],
                    placeholder: str,
                    limit: Optional[int] = None) -> List[BreakdownEntry]:
    """按 key_fn 分组求和，按金额降序返回。

    金额相同时保持首次出现的顺序。key 为空时归入 placeholder。

    Args:
        rows: 输入行。
        key_fn: 取分组键的函数。
        amount_fn: 取金额的函数。
        placeholder: 缺失键使用的名称。
        limit: 只返回前 N 项（可选）。
    """
    totals: Dict[str, Decimal] = {}
    for row in rows:
        key = key_fn(row) or placeholder
        totals[key] = totals.get(key, Decimal(0)) + to_amount(amount_fn(row))

    grand_total = sum(totals.values(), Decimal(0))
    entries = sorted(
        (BreakdownEntry(key=k, amount=v, ratio=percentage(v, grand_total))
         for k, v in totals.items()),
        key=lambda e: e.amount, reverse=True,
    )
    if limit is not None:
        entries = entries[:limit]
    return entries


def breakdown_by_sale_type(sales: Iterable[Row]) -> List[BreakdownEntry]:
    return group_breakdown(
        sales, lambda s: s.get("sale_type_name"),
        lambda s: s.get("total_amount"), UNCATEGORIZED_LABEL,
    )


def breakdown_by_customer(sales: Iterable[Row],
                          limit: int = TOP_CUSTOMERS
                          ) -> List[BreakdownEntry]:
    return group_breakdown(
        sales, lambda s: s.get("customer_name"),
        lambda s: s.get("total_amount"), UNKNOWN_LABEL, limit=limit,
    )


def breakdown_by_outsource(costs: Iterable[Row]) -> List[BreakdownEntry]:
    return group_breakdown(
        costs, lambda c: c.get("outsource_name"),
        lambda c: c.get("amount"), UNKNOWN_LABEL,
    )


def group_costs_by_outsource(costs: Iterable[Row]
                             ) -> List[OutsourceCostGroup]:
    """按外注先归集外注コスト（保留每行的売上信息），按首次出现顺序。"""
    groups: Dict[Any, OutsourceCostGroup] = {}
    for cost in costs:
        outsource_id = cost.get("outsource_id")
        group = groups.get(outsource_id)
        if group is None:
            group = OutsourceCostGroup(
                outsource_id=outsource_id,
                name=cost.get("outsource_name") or UNKNOWN_LABEL,
            )
            groups[outsource_id] = group
        group.total_cost += to_amount(cost.get("amount"))
        group.sales.append({
            "id": cost.get("id"),
            "sale_id": cost.get("sale_id"),
            "date": to_date(cost.get("sale_date")),
            "customer": cost.get("customer_name") or UNKNOWN_LABEL,
            "total_amount": to_amount(cost.get("sale_total_amount")),
            "amount": to_amount(cost.get("amount")),
            "description": cost.get("description"),
        })
    return list(groups.values())


# ================================================================
# 日历分桶
# ================================================================

def bucket_by_month(sales: Iterable[Row], costs: Iterable[Row],
                    year: int) -> List[CalendarBucket]:
    """按月分桶：固定 12 个桶，只计入 year 年的売上。"""
    buckets = [CalendarBucket(index=m, label=m + 1) for m in range(12)]
    costs_by_sale = cost_by_sale(costs)
    for sale in sales:
        sale_date = to_date(sale.get("sale_date"))
        if sale_date is None or sale_date.year != year:
            continue
        bucket = buckets[sale_date.month - 1]
        bucket.sales += to_amount(sale.get("total_amount"))
        bucket.outsource_cost += costs_by_sale.get(sale.get("id"), Decimal(0))
    return buckets


def bucket_by_day(sales: Iterable[Row], costs: Iterable[Row],
                  year: int, month: int) -> List[CalendarBucket]:
    """按日分桶：固定为当月天数个桶，只计入该年月的売上。"""
    days = calendar.monthrange(year, month)[1]
    buckets = [
        CalendarBucket(index=d - 1, label=d, day=date(year, month, d))
        for d in range(1, days + 1)
    ]
    costs_by_sale = cost_by_sale(costs)
    for sale in sales:
        sale_date = to_date(sale.get("sale_date"))
        if (sale_date is None or sale_date.year != year
                or sale_date.month != month):
            continue
        bucket = buckets[sale_date.day - 1]
        bucket.sales += to_amount(sale.get("total_amount"))
        bucket.outsource_cost += costs_by_sale.get(sale.get("id"), Decimal(0))
    return buckets


# ================================================================
# 納期
# ================================================================

def is_overdue(sale: Row, today: Optional[date] = None) -> bool:
    """進行中且納品日早于今天（本地日历日）时视为納期超過。"""
    if sale.get("sale_status") != IN_PROGRESS:
        return False
    delivery_date = to_date(sale.get("delivery_date"))
    if delivery_date is None:
        return False
    today = to_date(today) if today is not None else date.today()
    return delivery_date < today
