"""报表服务 - 组合数据库读取与汇总引擎

每个报表方法是一个独立的错误边界：数据库异常被记录后，
以 "固定描述: 原始错误" 的形式作为 ReportError 抛出。
"""
from datetime import date
from typing import Any, Dict, List, Optional

from loguru import logger

from business import aggregation as agg
from config.settings import settings
from database import DatabaseManager
from database.exceptions import DataStoreError, ReportError


class ReportService:
    """报表服务

    Example::

        reports = ReportService(db)
        report = reports.monthly_report(2025, 3)
        print(report["summary"]["total_profit"])
    """

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    def monthly_report(self, year: int, month: int) -> Dict[str, Any]:
        """月次レポート

        Returns:
            字典：summary（期间合计）、daily（按日分桶）、
            by_sale_type、by_customer（前5）、by_outsource。
        """
        start, end = agg.month_range(year, month)
        try:
            sales = self.db.sales.list_between(start, end)
            costs = self.db.outsource_costs.list_for_sales(
                s["id"] for s in sales
            )
        except DataStoreError as e:
            logger.error(f"Error fetching monthly data: {e}")
            raise ReportError(f"月次データの取得に失敗しました: {e}") from e

        self._warn_multi_cost(costs)
        totals = agg.period_totals(sales, costs, start, end)
        return {
            "year": year,
            "month": month,
            "summary": totals.to_dict(),
            "daily": [
                b.to_dict() for b in agg.bucket_by_day(sales, costs, year, month)
            ],
            "by_sale_type": agg.breakdown_by_sale_type(sales),
            "by_customer": agg.breakdown_by_customer(
                sales, limit=settings.top_customers_limit
            ),
            "by_outsource": agg.breakdown_by_outsource(costs),
        }

    def yearly_trend(self, year: int) -> List[Dict[str, Any]]:
        """年間推移（12个月，每月 売上 / 外注費 / 利益）"""
        start, end = agg.year_range(year)
        try:
            sales = self.db.sales.list_between(start, end)
            costs = self.db.outsource_costs.list_for_sales(
                s["id"] for s in sales
            )
        except DataStoreError as e:
            logger.error(f"Error fetching yearly trend: {e}")
            raise ReportError(f"年間データの取得に失敗しました: {e}") from e

        self._warn_multi_cost(costs)
        return [b.to_dict() for b in agg.bucket_by_month(sales, costs, year)]

    def dashboard(self, today: Optional[date] = None) -> Dict[str, Any]:
        """ダッシュボード

        Args:
            today: 基准日，默认今天。

        Returns:
            字典：month_summary（当月合计）、recent_sales（最近売上，含利益）、
            monthly（当年12个月分桶）、in_progress（进行中，含 overdue）。
        """
        today = today or date.today()
        start, end = agg.month_range(today.year, today.month)
        year_start, year_end = agg.year_range(today.year)
        try:
            year_sales = self.db.sales.list_between(year_start, year_end)
            year_costs = self.db.outsource_costs.list_for_sales(
                s["id"] for s in year_sales
            )
            recent = self.db.sales.recent(settings.recent_sales_limit)
            recent_costs = self.db.outsource_costs.list_for_sales(
                s["id"] for s in recent
            )
            in_progress = self.db.sales.in_progress()
        except DataStoreError as e:
            logger.error(f"Error fetching dashboard data: {e}")
            raise ReportError(f"データの取得に失敗しました: {e}") from e

        return {
            "month_summary": agg.period_totals(
                year_sales, year_costs, start, end
            ).to_dict(),
            "recent_sales": agg.annotate_sales(recent, recent_costs),
            "monthly": [
                b.to_dict()
                for b in agg.bucket_by_month(year_sales, year_costs, today.year)
            ],
            "in_progress": self._flag_overdue(in_progress, today),
        }

    def in_progress_sales(self, today: Optional[date] = None
                          ) -> List[Dict[str, Any]]:
        """进行中的売上（按納品日升序），每行附加 overdue 标记"""
        try:
            rows = self.db.sales.in_progress()
        except DataStoreError as e:
            logger.error(f"Error fetching in-progress sales: {e}")
            raise ReportError(f"進行中の案件の取得に失敗しました: {e}") from e
        return self._flag_overdue(rows, today)

    def sales_page(self, filters: Optional[Dict[str, Any]] = None,
                   page: int = 1, sort_field: str = "sale_date",
                   sort_order: str = "desc",
                   today: Optional[date] = None) -> Dict[str, Any]:
        """売上一览（分页），每行附加外注費、利益与 overdue 标记"""
        try:
            result = self.db.sales.list_page(
                filters, page=page, per_page=settings.page_size,
                sort_field=sort_field, sort_order=sort_order,
            )
            costs = self.db.outsource_costs.list_for_sales(
                r["id"] for r in result["rows"]
            )
        except DataStoreError as e:
            logger.error(f"Error fetching sales: {e}")
            raise ReportError(f"売上データの取得に失敗しました: {e}") from e

        self._warn_multi_cost(costs)
        result["rows"] = self._flag_overdue(
            agg.annotate_sales(result["rows"], costs), today
        )
        return result

    def outsource_summary(self) -> List[agg.OutsourceCostGroup]:
        """外注先别的外注コスト汇总"""
        try:
            costs = self.db.outsource_costs.list_with_sales()
        except DataStoreError as e:
            logger.error(f"Error fetching outsource costs: {e}")
            raise ReportError(f"外注コストの取得に失敗しました: {e}") from e
        return agg.group_costs_by_outsource(costs)

    @staticmethod
    def _flag_overdue(rows: List[Dict[str, Any]],
                      today: Optional[date]) -> List[Dict[str, Any]]:
        for row in rows:
            row["overdue"] = agg.is_overdue(row, today)
        return rows

    @staticmethod
    def _warn_multi_cost(costs: List[Dict[str, Any]]) -> None:
        for sale_id in agg.find_multi_cost_sales(costs):
            logger.warning(
                f"Sale {sale_id} has multiple outsource cost rows; "
                f"totals include all of them"
            )
