"""Business repository tests.

Tests for:
- SaleRepository.save: validation, defaults, outsource cost replacement
- SaleRepository.list_page: filters, pagination, sorting
- SaleRepository.in_progress / recent / complete / reassign_sale_type
- OutsourceCostRepository: get_for_sale, list_for_sales, list_with_sales
- SaleItemRepository: add, list_for_sale, delete_for_sale
"""
from datetime import date
from decimal import Decimal

import pytest

from database.exceptions import ValidationError, SentinelMissingError
from database.models import OutsourceCost, SaleType, SaleStatus
from tests.database.conftest import make_sale


# ============================================================
# SaleRepository.save
# ============================================================
class TestSaveSale:

    def test_new_sale_defaults(self, temp_db, customer):
        sale_id = make_sale(temp_db, customer.id)
        sale = temp_db.sales.get(sale_id)
        sentinel = temp_db.sale_types.get_uncategorized()

        assert sale["sale_status"] == SaleStatus.COMPLETED.value
        assert sale["sale_type_id"] == sentinel.id
        assert sale["sale_type_name"] == "未分類"
        assert sale["customer_name"] == "山田商事"
        assert sale["total_amount"] == Decimal("10000")
        assert sale["sale_date"] == date(2025, 3, 5)

    def test_update_defaults_to_in_progress(self, temp_db, customer):
        sale_id = make_sale(temp_db, customer.id)
        temp_db.save_sale({
            "customer_id": customer.id,
            "sale_date": "2025-03-06",
            "total_amount": "12,000",
        }, sale_id=sale_id)
        sale = temp_db.sales.get(sale_id)
        assert sale["sale_status"] == SaleStatus.IN_PROGRESS.value
        assert sale["total_amount"] == Decimal("12000")
        assert sale["sale_date"] == date(2025, 3, 6)

    def test_date_with_time_suffix(self, temp_db, customer):
        sale_id = make_sale(temp_db, customer.id,
                            sale_date="2025-03-05T09:30:00",
                            delivery_date="2025-04-01T00:00:00")
        sale = temp_db.sales.get(sale_id)
        assert sale["sale_date"] == date(2025, 3, 5)
        assert sale["delivery_date"] == date(2025, 4, 1)

    @pytest.mark.parametrize("data", [
        {"sale_date": "2025-03-05", "total_amount": 1},
        {"customer_id": 1, "total_amount": 1},
        {"customer_id": 1, "sale_date": "2025-03-05"},
        {"customer_id": 1, "sale_date": "2025-03-05", "total_amount": ""},
    ])
    def test_missing_required_fields(self, temp_db, data):
        with pytest.raises(ValidationError):
            temp_db.save_sale(data)

    @pytest.mark.parametrize("amount", ["abc", "-5", "NaN"])
    def test_invalid_amount(self, temp_db, customer, amount):
        with pytest.raises(ValidationError) as exc:
            make_sale(temp_db, customer.id, amount=amount)
        assert exc.value.field == "total_amount"

    def test_invalid_date(self, temp_db, customer):
        with pytest.raises(ValidationError) as exc:
            make_sale(temp_db, customer.id, sale_date="2025/03/05")
        assert exc.value.field == "sale_date"

    def test_invalid_customer_id(self, temp_db, customer):
        with pytest.raises(ValidationError) as exc:
            make_sale(temp_db, "abc")
        assert exc.value.field == "customer_id"
        assert temp_db.sales.recent() == []

    @pytest.mark.parametrize("field", ["sale_type_id", "outsource_id"])
    def test_invalid_reference_id(self, temp_db, customer, field):
        with pytest.raises(ValidationError) as exc:
            make_sale(temp_db, customer.id, **{field: "x1"})
        assert exc.value.field == field

    def test_numeric_string_ids_accepted(self, temp_db, customer, outsource):
        sale_id = make_sale(temp_db, str(customer.id),
                            outsource_id=str(outsource.id),
                            outsource_amount=500)
        assert temp_db.sales.get(sale_id)["customer_id"] == customer.id
        cost = temp_db.outsource_costs.get_for_sale(sale_id)
        assert cost["outsource_id"] == outsource.id

    def test_invalid_status(self, temp_db, customer):
        with pytest.raises(ValidationError):
            make_sale(temp_db, customer.id, sale_status="done")

    def test_validation_failure_writes_nothing(self, temp_db, customer):
        with pytest.raises(ValidationError):
            make_sale(temp_db, customer.id, amount="abc")
        assert temp_db.sales.recent() == []

    def test_update_missing_sale(self, temp_db, customer):
        with pytest.raises(ValidationError):
            temp_db.save_sale({
                "customer_id": customer.id,
                "sale_date": "2025-03-05",
                "total_amount": 1,
            }, sale_id=99999)

    def test_missing_sentinel(self, temp_db, customer):
        with temp_db.get_session() as session:
            session.query(SaleType).delete()
            session.commit()
        with pytest.raises(SentinelMissingError):
            make_sale(temp_db, customer.id)
        assert temp_db.sales.recent() == []

    def test_explicit_sale_type(self, temp_db, customer):
        sale_type = temp_db.sale_types.create("制作")
        sale_id = make_sale(temp_db, customer.id, sale_type_id=sale_type.id)
        assert temp_db.sales.get(sale_id)["sale_type_name"] == "制作"


# ============================================================
# Outsource cost replacement
# ============================================================
class TestOutsourceCostReplace:

    def test_save_creates_cost(self, temp_db, customer, outsource):
        sale_id = make_sale(temp_db, customer.id, outsource_id=outsource.id,
                            outsource_amount=3000,
                            outsource_description="デザイン")
        cost = temp_db.outsource_costs.get_for_sale(sale_id)
        assert cost["outsource_id"] == outsource.id
        assert cost["outsource_name"] == "田中デザイン"
        assert cost["amount"] == Decimal("3000")
        assert cost["description"] == "デザイン"

    def test_update_replaces_cost(self, temp_db, customer, outsource):
        sale_id = make_sale(temp_db, customer.id, outsource_id=outsource.id,
                            outsource_amount=3000)
        temp_db.save_sale({
            "customer_id": customer.id, "sale_date": "2025-03-05",
            "total_amount": 10000, "outsource_id": outsource.id,
            "outsource_amount": 4000,
        }, sale_id=sale_id)
        costs = temp_db.outsource_costs.list_for_sales([sale_id])
        assert len(costs) == 1
        assert costs[0]["amount"] == Decimal("4000")

    @pytest.mark.parametrize("extra", [
        {},
        {"outsource_amount": 0},
        {"outsource_amount": ""},
    ])
    def test_update_without_amount_clears_cost(self, temp_db, customer,
                                               outsource, extra):
        sale_id = make_sale(temp_db, customer.id, outsource_id=outsource.id,
                            outsource_amount=3000)
        data = {"customer_id": customer.id, "sale_date": "2025-03-05",
                "total_amount": 10000, "outsource_id": outsource.id}
        data.update(extra)
        temp_db.save_sale(data, sale_id=sale_id)
        assert temp_db.outsource_costs.get_for_sale(sale_id) is None

    def test_amount_without_outsource_not_stored(self, temp_db, customer):
        sale_id = make_sale(temp_db, customer.id, outsource_amount=3000)
        assert temp_db.outsource_costs.get_for_sale(sale_id) is None

    def test_get_for_sale_returns_first_of_many(self, temp_db, customer,
                                                outsource):
        sale_id = make_sale(temp_db, customer.id)
        with temp_db.get_session() as session:
            session.add(OutsourceCost(sale_id=sale_id,
                                      outsource_id=outsource.id,
                                      amount=Decimal("100")))
            session.add(OutsourceCost(sale_id=sale_id,
                                      outsource_id=outsource.id,
                                      amount=Decimal("200")))
            session.commit()
        cost = temp_db.outsource_costs.get_for_sale(sale_id)
        assert cost["amount"] == Decimal("100")
        assert len(temp_db.outsource_costs.list_for_sales([sale_id])) == 2

    def test_list_for_sales_empty(self, temp_db):
        assert temp_db.outsource_costs.list_for_sales([]) == []

    def test_list_with_sales(self, temp_db, customer, outsource):
        sale_id = make_sale(temp_db, customer.id, outsource_id=outsource.id,
                            outsource_amount=3000)
        rows = temp_db.outsource_costs.list_with_sales()
        assert len(rows) == 1
        assert rows[0]["sale_id"] == sale_id
        assert rows[0]["customer_name"] == "山田商事"
        assert rows[0]["sale_total_amount"] == Decimal("10000")
        assert rows[0]["sale_date"] == date(2025, 3, 5)


# ============================================================
# SaleItemRepository
# ============================================================
class TestSaleItems:

    def test_add_computes_amount(self, temp_db, customer):
        sale_id = make_sale(temp_db, customer.id)
        temp_db.sale_items.add(sale_id, "作業", quantity=3, unit_price=1000)
        items = temp_db.sale_items.list_for_sale(sale_id)
        assert len(items) == 1
        assert items[0].amount == Decimal("3000")

    def test_delete_for_sale(self, temp_db, customer):
        sale_id = make_sale(temp_db, customer.id)
        temp_db.sale_items.add(sale_id, "a", amount=1)
        temp_db.sale_items.add(sale_id, "b", amount=2)
        assert temp_db.sale_items.delete_for_sale(sale_id) == 2
        assert temp_db.sale_items.delete_for_sale(sale_id) == 0


# ============================================================
# SaleRepository queries
# ============================================================
class TestListPage:

    @pytest.fixture
    def populated(self, temp_db):
        acme = temp_db.customers.create("Acme")
        beta = temp_db.customers.create("Beta")
        build = temp_db.sale_types.create("制作")
        for day in range(1, 13):
            make_sale(temp_db, acme.id if day % 2 else beta.id,
                      sale_date=f"2025-03-{day:02d}", amount=day * 1000,
                      sale_type_id=build.id if day <= 4 else None,
                      sale_status="進行中" if day > 10 else "完了")
        return temp_db, acme, beta, build

    def test_pagination(self, populated):
        db = populated[0]
        page1 = db.sales.list_page(page=1, per_page=5)
        page3 = db.sales.list_page(page=3, per_page=5)
        assert page1["total_count"] == 12
        assert page1["total_pages"] == 3
        assert len(page1["rows"]) == 5
        assert len(page3["rows"]) == 2
        assert page1["rows"][0]["sale_date"] == date(2025, 3, 12)

    def test_sort_ascending_by_amount(self, populated):
        db = populated[0]
        rows = db.sales.list_page(sort_field="total_amount",
                                  sort_order="asc", per_page=3)["rows"]
        assert [r["total_amount"] for r in rows] == [
            Decimal("1000"), Decimal("2000"), Decimal("3000")
        ]

    def test_unknown_sort_field(self, populated):
        with pytest.raises(ValidationError):
            populated[0].sales.list_page(sort_field="password")

    def test_filter_date_range(self, populated):
        db = populated[0]
        result = db.sales.list_page({"start_date": "2025-03-03",
                                     "end_date": "2025-03-05"})
        assert result["total_count"] == 3

    def test_filter_customer_name(self, populated):
        db = populated[0]
        result = db.sales.list_page({"customer_name": "acm"})
        assert result["total_count"] == 6
        assert all(r["customer_name"] == "Acme" for r in result["rows"])

    def test_filter_customer_name_no_match(self, populated):
        result = populated[0].sales.list_page({"customer_name": "nobody"})
        assert result == {"rows": [], "total_count": 0,
                          "total_pages": 0, "page": 1}

    def test_filter_sale_type_amount_status(self, populated):
        db, _, _, build = populated
        assert db.sales.list_page(
            {"sale_type_id": build.id})["total_count"] == 4
        assert db.sales.list_page(
            {"min_amount": 5000, "max_amount": 7000})["total_count"] == 3
        assert db.sales.list_page(
            {"status": "進行中"})["total_count"] == 2


class TestSaleQueries:

    def test_in_progress_ordering(self, temp_db, customer):
        late = make_sale(temp_db, customer.id, sale_status="進行中",
                         delivery_date="2025-05-01")
        none = make_sale(temp_db, customer.id, sale_status="進行中")
        soon = make_sale(temp_db, customer.id, sale_status="進行中",
                         delivery_date="2025-04-01")
        make_sale(temp_db, customer.id)
        ids = [s["id"] for s in temp_db.sales.in_progress()]
        assert ids == [soon, late, none]

    def test_recent(self, temp_db, customer):
        for day in range(1, 8):
            make_sale(temp_db, customer.id, sale_date=f"2025-03-{day:02d}")
        recent = temp_db.sales.recent(5)
        assert len(recent) == 5
        assert recent[0]["sale_date"] == date(2025, 3, 7)

    def test_list_between_inclusive(self, temp_db, customer):
        make_sale(temp_db, customer.id, sale_date="2025-02-28")
        make_sale(temp_db, customer.id, sale_date="2025-03-01")
        make_sale(temp_db, customer.id, sale_date="2025-03-31")
        make_sale(temp_db, customer.id, sale_date="2025-04-01")
        rows = temp_db.sales.list_between(date(2025, 3, 1), date(2025, 3, 31))
        assert [r["sale_date"].day for r in rows] == [1, 31]

    def test_complete(self, temp_db, customer):
        sale_id = make_sale(temp_db, customer.id, sale_status="進行中")
        assert temp_db.complete_sale(sale_id) is True
        assert temp_db.sales.get(sale_id)["sale_status"] == "完了"
        assert temp_db.complete_sale(99999) is False

    def test_reassign_sale_type(self, temp_db, customer):
        a = temp_db.sale_types.create("A")
        b = temp_db.sale_types.create("B")
        make_sale(temp_db, customer.id, sale_type_id=a.id)
        make_sale(temp_db, customer.id, sale_type_id=a.id)
        assert temp_db.sales.reassign_sale_type(a.id, b.id) == 2
        assert temp_db.sales.list_page(
            {"sale_type_id": b.id})["total_count"] == 2
