"""Aggregation engine tests (pure functions, no database)."""
from datetime import date, datetime
from decimal import Decimal

import pytest

from business import aggregation as agg


def sale(id, sale_date, amount, **extra):
    row = {"id": id, "sale_date": sale_date, "total_amount": amount}
    row.update(extra)
    return row


def cost(sale_id, amount, outsource_name="田中", **extra):
    row = {"sale_id": sale_id, "amount": amount,
           "outsource_name": outsource_name}
    row.update(extra)
    return row


class TestPeriodTotals:

    def test_profit_is_sales_minus_cost(self):
        sales = [sale(1, date(2025, 3, 5), 10000),
                 sale(2, date(2025, 3, 6), 2500)]
        costs = [cost(1, 3000), cost(2, 499)]
        totals = agg.period_totals(sales, costs)
        assert totals.total_sales == Decimal(12500)
        assert totals.total_outsource_cost == Decimal(3499)
        assert totals.total_profit == totals.total_sales - totals.total_outsource_cost
        assert totals.count == 2

    def test_empty(self):
        totals = agg.period_totals([], [])
        assert totals.total_sales == 0
        assert totals.total_outsource_cost == 0
        assert totals.total_profit == 0
        assert totals.count == 0
        assert totals.outsource_ratio == 0
        assert totals.profit_ratio == 0

    def test_costs_outside_scope_ignored(self):
        sales = [sale(1, date(2025, 3, 5), 10000),
                 sale(2, date(2025, 4, 1), 5000)]
        costs = [cost(1, 3000), cost(2, 1000), cost(99, 500)]
        totals = agg.period_totals(sales, costs, date(2025, 3, 1),
                                   date(2025, 3, 31))
        assert totals.total_sales == Decimal(10000)
        assert totals.total_outsource_cost == Decimal(3000)
        assert totals.count == 1

    def test_missing_amounts_count_as_zero(self):
        sales = [sale(1, date(2025, 3, 5), None), sale(2, "2025-03-06", "")]
        totals = agg.period_totals(sales, [cost(1, None)])
        assert totals.total_sales == 0
        assert totals.count == 2

    def test_ratios(self):
        totals = agg.period_totals([sale(1, date(2025, 3, 5), 10000)],
                                   [cost(1, 3000)])
        assert totals.outsource_ratio == 30.0
        assert totals.profit_ratio == 70.0
        assert totals.to_dict()["profit_ratio"] == 70.0


class TestBreakdowns:

    def test_empty(self):
        assert agg.breakdown_by_sale_type([]) == []
        assert agg.breakdown_by_customer([]) == []
        assert agg.breakdown_by_outsource([]) == []

    def test_customer_top_five_sorted(self):
        sales = [
            sale(i, date(2025, 3, 1), amount, customer_name=name)
            for i, (name, amount) in enumerate([
                ("A", 100), ("B", 700), ("C", 300), ("D", 500),
                ("E", 200), ("F", 600), ("A", 50),
            ])
        ]
        result = agg.breakdown_by_customer(sales)
        assert len(result) == 5
        assert [e.key for e in result] == ["B", "F", "D", "C", "E"]
        amounts = [e.amount for e in result]
        assert amounts == sorted(amounts, reverse=True)

    def test_ties_keep_encounter_order(self):
        sales = [sale(i, date(2025, 3, 1), 100, customer_name=name)
                 for i, name in enumerate(["X", "Y", "Z"])]
        assert [e.key for e in agg.breakdown_by_customer(sales)] == [
            "X", "Y", "Z"
        ]

    def test_placeholders(self):
        sales = [sale(1, date(2025, 3, 1), 100)]
        assert agg.breakdown_by_sale_type(sales)[0].key == "未分類"
        assert agg.breakdown_by_customer(sales)[0].key == "不明"
        costs = [cost(1, 10, outsource_name=None)]
        assert agg.breakdown_by_outsource(costs)[0].key == "不明"

    def test_sale_type_groups_sum(self):
        sales = [
            sale(1, date(2025, 3, 1), 100, sale_type_name="制作"),
            sale(2, date(2025, 3, 2), 300, sale_type_name="保守"),
            sale(3, date(2025, 3, 3), 250, sale_type_name="制作"),
        ]
        result = agg.breakdown_by_sale_type(sales)
        assert [(e.key, e.amount) for e in result] == [
            ("制作", Decimal(350)), ("保守", Decimal(300))
        ]

    def test_ratio_of_breakdown_total(self):
        sales = [
            sale(1, date(2025, 3, 1), 100, sale_type_name="制作"),
            sale(2, date(2025, 3, 2), 300, sale_type_name="保守"),
            sale(3, date(2025, 3, 3), 250, sale_type_name="制作"),
        ]
        result = agg.breakdown_by_sale_type(sales)
        assert [e.ratio for e in result] == [53.8, 46.2]

    def test_ratio_counts_entries_beyond_top_five(self):
        sales = [
            sale(i, date(2025, 3, 1), amount, customer_name=name)
            for i, (name, amount) in enumerate([
                ("A", 150), ("B", 700), ("C", 300), ("D", 500),
                ("E", 200), ("F", 600),
            ])
        ]
        result = agg.breakdown_by_customer(sales)
        # 700 / 2450
        assert result[0].ratio == 28.6
        assert sum(e.ratio for e in result) < 100

    def test_group_costs_by_outsource(self):
        costs = [
            cost(1, 100, outsource_id=1, customer_name="A",
                 sale_date=date(2025, 3, 1), sale_total_amount=1000),
            cost(2, 200, outsource_id=2, outsource_name="佐藤"),
            cost(3, 50, outsource_id=1),
        ]
        groups = agg.group_costs_by_outsource(costs)
        assert [g.name for g in groups] == ["田中", "佐藤"]
        assert groups[0].total_cost == Decimal(150)
        assert len(groups[0].sales) == 2
        assert groups[0].sales[0]["customer"] == "A"
        assert groups[0].sales[1]["customer"] == "不明"


class TestCalendarBuckets:

    def test_twelve_month_buckets(self):
        buckets = agg.bucket_by_month([], [], 2025)
        assert len(buckets) == 12
        assert [b.label for b in buckets] == list(range(1, 13))
        assert all(b.sales == 0 and b.outsource_cost == 0 for b in buckets)

    @pytest.mark.parametrize("year,month,days", [
        (2025, 2, 28), (2024, 2, 29), (2025, 4, 30), (2025, 3, 31),
    ])
    def test_day_bucket_count(self, year, month, days):
        buckets = agg.bucket_by_day([], [], year, month)
        assert len(buckets) == days
        assert buckets[0].day == date(year, month, 1)
        assert buckets[-1].label == days
        assert all(b.profit == 0 for b in buckets)

    def test_march_example(self):
        sales = [sale(1, date(2025, 3, 5), 10000)]
        costs = [cost(1, 3000)]
        march = agg.bucket_by_month(sales, costs, 2025)[2]
        assert march.sales == Decimal(10000)
        assert march.outsource_cost == Decimal(3000)
        assert march.profit == Decimal(7000)

        day5 = agg.bucket_by_day(sales, costs, 2025, 3)[4]
        assert day5.to_dict()["profit"] == Decimal(7000)

        annotated = agg.annotate_sales(sales, costs)
        assert annotated[0]["profit"] == Decimal(7000)

    def test_other_years_excluded(self):
        sales = [sale(1, date(2024, 3, 5), 10000),
                 sale(2, datetime(2025, 3, 5, 23, 59), 500)]
        buckets = agg.bucket_by_month(sales, [], 2025)
        assert buckets[2].sales == Decimal(500)


class TestOutsourceCosts:

    def test_multiple_costs_summed(self):
        costs = [cost(1, 1000), cost(1, 2000), cost(2, 10)]
        assert agg.cost_by_sale(costs) == {1: Decimal(3000), 2: Decimal(10)}
        assert agg.find_multi_cost_sales(costs) == [1]

    def test_annotate_sales(self):
        sales = [sale(1, date(2025, 3, 5), 10000),
                 sale(2, date(2025, 3, 6), 500)]
        costs = [cost(1, 1000), cost(1, 2000)]
        rows = agg.annotate_sales(sales, costs)
        assert rows[0]["outsource_cost_total"] == Decimal(3000)
        assert len(rows[0]["outsource_costs"]) == 2
        assert rows[0]["profit"] == Decimal(7000)
        assert rows[1]["outsource_costs"] == []
        assert rows[1]["profit"] == Decimal(500)
        assert "profit" not in sales[0]


class TestIsOverdue:

    today = date(2025, 1, 11)

    def test_in_progress_past_delivery(self):
        row = {"sale_status": "進行中", "delivery_date": date(2025, 1, 10)}
        assert agg.is_overdue(row, self.today) is True

    def test_completed_not_overdue(self):
        row = {"sale_status": "完了", "delivery_date": date(2025, 1, 10)}
        assert agg.is_overdue(row, self.today) is False

    def test_no_delivery_date(self):
        row = {"sale_status": "進行中", "delivery_date": None}
        assert agg.is_overdue(row, self.today) is False

    def test_due_today_not_overdue(self):
        row = {"sale_status": "進行中", "delivery_date": "2025-01-11"}
        assert agg.is_overdue(row, self.today) is False


class TestHelpers:

    def test_percentage_zero_whole(self):
        assert agg.percentage(5, 0) == 0
        assert agg.percentage(1, 3) == 33.3

    def test_month_range(self):
        assert agg.month_range(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
        assert agg.year_range(2025) == (date(2025, 1, 1), date(2025, 12, 31))

    def test_to_date(self):
        assert agg.to_date("2025-03-05T10:00:00") == date(2025, 3, 5)
        assert agg.to_date(None) is None
