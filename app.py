#!/usr/bin/env python3
"""売上管理 - 命令行入口

使用方式：
    python app.py init
    python app.py monthly 2025 3
    python app.py yearly 2025
    python app.py dashboard
    python app.py delete-customer 3
    python app.py delete-sale 12 --yes

    # 指定数据库
    python app.py --db sqlite:///data/sales.db dashboard

环境变量（在 .env 文件中配置）：
    DATABASE_URL      数据库连接地址（默认 sqlite:///data/sales.db）
    LOG_LEVEL         日志级别（默认 INFO）
    LOG_FILE          日志文件路径（可选）
"""
import argparse
import sys
from typing import List, Optional

from loguru import logger

from business.reports import ReportService
from config.logging_setup import setup_logging
from config.settings import settings
from database import (
    DatabaseManager, ConfirmationRequired, SalesTrackerError,
)


def terminal_confirm(message: str, count: int = 0) -> bool:
    """在终端询问 y/N。"""
    answer = input(f"{message} (y/N): ").strip().lower()
    return answer in ("y", "yes")


def _money(value) -> str:
    return f"{settings.currency_symbol}{value:,.0f}"


def _print_totals(summary: dict) -> None:
    print(f"  売上合計:   {_money(summary['total_sales'])}  ({summary['count']}件)")
    print(f"  外注費合計: {_money(summary['total_outsource_cost'])}"
          f"  ({summary['outsource_ratio']}%)")
    print(f"  利益:       {_money(summary['total_profit'])}"
          f"  ({summary['profit_ratio']}%)")


def cmd_init(db: DatabaseManager, args) -> int:
    from scripts.init_db import seed_sale_types
    seed_sale_types(db)
    db.log_summary()
    print(f"データベースを初期化しました: {db.database_url}")
    return 0


def cmd_monthly(db: DatabaseManager, args) -> int:
    report = ReportService(db).monthly_report(args.year, args.month)
    print(f"{args.year}年{args.month}月 月次レポート")
    _print_totals(report["summary"])
    for title, key in (("売上種類別", "by_sale_type"),
                       ("顧客別 (上位)", "by_customer"),
                       ("外注先別", "by_outsource")):
        print(f"\n  [{title}]")
        for entry in report[key]:
            print(f"    {entry.key}: {_money(entry.amount)}  ({entry.ratio}%)")
    return 0


def cmd_yearly(db: DatabaseManager, args) -> int:
    buckets = ReportService(db).yearly_trend(args.year)
    print(f"{args.year}年 年間推移")
    for b in buckets:
        print(f"  {b['label']:>2}月  売上 {_money(b['sales'])}"
              f"  外注費 {_money(b['outsource_cost'])}"
              f"  利益 {_money(b['profit'])}")
    return 0


def cmd_dashboard(db: DatabaseManager, args) -> int:
    data = ReportService(db).dashboard()
    print("今月の実績")
    _print_totals(data["month_summary"])
    print("\n最近の売上")
    for sale in data["recent_sales"]:
        print(f"  {sale['sale_date']}  {sale['customer_name']}"
              f"  {_money(sale['total_amount'])}  利益 {_money(sale['profit'])}")
    print("\n進行中の案件")
    for sale in data["in_progress"]:
        mark = " [納期超過]" if sale["overdue"] else ""
        print(f"  {sale['delivery_date'] or '-'}  {sale['customer_name']}"
              f"  {_money(sale['total_amount'])}{mark}")
    return 0


def cmd_delete_customer(db: DatabaseManager, args) -> int:
    result = db.delete_customer(args.id, confirmed=args.yes)
    print(f"顧客 {args.id} を削除しました ({result.affected}行)")
    return 0


def _confirmed_delete(label: str, action, args) -> int:
    if not args.yes and not terminal_confirm(f"{label} {args.id} を削除しますか？"):
        print("キャンセルしました。")
        return 1
    result = action(args.id)
    print(f"{label} {args.id} を削除しました ({result.affected}行)")
    return 0


def cmd_delete_sale(db: DatabaseManager, args) -> int:
    return _confirmed_delete("売上", db.delete_sale, args)


def cmd_delete_outsource(db: DatabaseManager, args) -> int:
    return _confirmed_delete("外注先", db.delete_outsource, args)


def cmd_delete_sale_type(db: DatabaseManager, args) -> int:
    return _confirmed_delete("売上種類", db.delete_sale_type, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="売上管理")
    parser.add_argument("--db", default=None,
                        help="データベース接続URL（省略時は DATABASE_URL）")
    parser.add_argument("--log-level", default=None, help="ログレベル")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="テーブルを作成し初期の売上種類を登録")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("monthly", help="月次レポート")
    p.add_argument("year", type=int)
    p.add_argument("month", type=int, choices=range(1, 13), metavar="MONTH")
    p.set_defaults(func=cmd_monthly)

    p = sub.add_parser("yearly", help="年間推移")
    p.add_argument("year", type=int)
    p.set_defaults(func=cmd_yearly)

    p = sub.add_parser("dashboard", help="ダッシュボード")
    p.set_defaults(func=cmd_dashboard)

    for name, func in (("delete-customer", cmd_delete_customer),
                       ("delete-sale", cmd_delete_sale),
                       ("delete-outsource", cmd_delete_outsource),
                       ("delete-sale-type", cmd_delete_sale_type)):
        p = sub.add_parser(name, help="関連データごと削除")
        p.add_argument("id", type=int)
        p.add_argument("--yes", "-y", action="store_true",
                       help="確認を省略")
        p.set_defaults(func=func)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)

    db = None
    try:
        db = DatabaseManager(args.db, confirm=terminal_confirm)
        db.create_tables()
        logger.debug(f"Connected to database: {db.database_url}")
        return args.func(db, args)
    except ConfirmationRequired as e:
        print(f"キャンセルしました: {e}")
        return 1
    except SalesTrackerError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"エラー: {e}", file=sys.stderr)
        return 2
    finally:
        if db is not None:
            db.close()


if __name__ == "__main__":
    sys.exit(main())
