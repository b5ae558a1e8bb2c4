"""Command-line entry point tests."""
import pytest

import app
from database import DatabaseManager
from tests.database.conftest import make_sale


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def seeded(db_url):
    """Prepare a customer with one sale and return (db, customer_id)."""
    db = DatabaseManager(db_url)
    db.create_tables()
    customer = db.customers.create("山田商事")
    outsource = db.outsources.create("田中デザイン")
    make_sale(db, customer.id, outsource_id=outsource.id,
              outsource_amount=3000)
    yield db, customer.id
    db.close()


def _answer(monkeypatch, reply):
    prompts = []

    def fake_input(prompt=""):
        prompts.append(prompt)
        return reply

    monkeypatch.setattr("builtins.input", fake_input)
    return prompts


class TestDeleteCustomerCommand:

    def test_declined(self, db_url, seeded, monkeypatch, capsys):
        db, customer_id = seeded
        prompts = _answer(monkeypatch, "n")

        code = app.main(["--db", db_url, "delete-customer", str(customer_id)])

        assert code == 1
        assert "1件" in prompts[0]
        assert len(db.customers.list_all()) == 1

    def test_accepted(self, db_url, seeded, monkeypatch):
        db, customer_id = seeded
        _answer(monkeypatch, "y")

        code = app.main(["--db", db_url, "delete-customer", str(customer_id)])

        assert code == 0
        assert db.customers.list_all() == []
        assert db.sales.recent() == []

    def test_yes_flag_skips_prompt(self, db_url, seeded, monkeypatch):
        db, customer_id = seeded
        prompts = _answer(monkeypatch, "n")

        code = app.main(["--db", db_url, "delete-customer",
                         str(customer_id), "--yes"])

        assert code == 0
        assert prompts == []
        assert db.customers.list_all() == []


class TestOtherCommands:

    def test_delete_sale_declined(self, db_url, seeded, monkeypatch, capsys):
        db, _ = seeded
        sale_id = db.sales.recent()[0]["id"]
        prompts = _answer(monkeypatch, "")
        assert app.main(["--db", db_url, "delete-sale", str(sale_id)]) == 1
        assert db.sales.get(sale_id) is not None
        assert prompts == [f"売上 {sale_id} を削除しますか？ (y/N): "]
        assert "キャンセルしました。" in capsys.readouterr().out

    def test_delete_sentinel_sale_type_fails(self, db_url, seeded, capsys):
        db, _ = seeded
        sentinel_id = db.sale_types.get_uncategorized().id
        code = app.main(["--db", db_url, "delete-sale-type",
                         str(sentinel_id), "-y"])
        assert code == 2
        assert "未分類" in capsys.readouterr().err

    def test_monthly(self, db_url, seeded, capsys):
        code = app.main(["--db", db_url, "monthly", "2025", "3"])
        out = capsys.readouterr().out
        assert code == 0
        assert "¥10,000" in out
        assert "¥7,000" in out
        assert "田中デザイン" in out
        assert "(100.0%)" in out

    def test_yearly(self, db_url, seeded, capsys):
        assert app.main(["--db", db_url, "yearly", "2025"]) == 0
        assert " 3月" in capsys.readouterr().out

    def test_dashboard(self, db_url, seeded):
        assert app.main(["--db", db_url, "dashboard"]) == 0

    def test_init_seeds_sale_types(self, db_url):
        assert app.main(["--db", db_url, "init"]) == 0
        db = DatabaseManager(db_url)
        try:
            names = {t["name"] for t in db.get_sale_type_list()}
        finally:
            db.close()
        assert names == {"未分類", "制作", "保守", "コンサルティング"}

    def test_invalid_month_rejected(self, db_url):
        with pytest.raises(SystemExit):
            app.main(["--db", db_url, "monthly", "2025", "13"])

    def test_help_text_is_japanese(self, capsys):
        with pytest.raises(SystemExit):
            app.main(["--help"])
        out = capsys.readouterr().out
        assert "データベース接続URL" in out
        assert "ログレベル" in out
