#!/usr/bin/env python3
"""交互式生成 .env 配置文件

使用方式：
    python scripts/setup_env.py

会引导用户填写配置项，生成 .env 文件。直接回车使用默认值。
"""
import os

# 项目根目录
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
ENV_FILE = os.path.join(PROJECT_ROOT, ".env")


# 配置项定义：(env_key, 描述, 默认值, 分组)
CONFIG_ITEMS = [
    ("DATABASE_URL", "データベース接続URL", "sqlite:///data/sales.db", "データベース"),
    ("LOG_LEVEL", "ログレベル", "INFO", "ログ"),
    ("LOG_FILE", "ログファイルのパス（空欄なら端末のみに出力）", "", "ログ"),
    ("PAGE_SIZE", "売上一覧の1ページあたりの件数", "10", "レポート"),
    ("RECENT_SALES_LIMIT", "ダッシュボードに表示する最近の売上件数", "5", "レポート"),
    ("TOP_CUSTOMERS_LIMIT", "顧客別内訳の表示件数", "5", "レポート"),
    ("CURRENCY_SYMBOL", "金額表示の通貨記号", "¥", "レポート"),
]


def build_env(values: dict) -> str:
    """按分组生成 .env 文本。"""
    env_lines = [
        "# 売上管理 設定ファイル",
        "# scripts/setup_env.py により自動生成",
    ]
    current_section = None
    for key, _desc, default, section in CONFIG_ITEMS:
        if section != current_section:
            current_section = section
            env_lines.append("")
            env_lines.append(f"# === {section}設定 ===")
        env_lines.append(f"{key}={values.get(key, default)}")
    return "\n".join(env_lines) + "\n"


def main():
    print()
    print("=" * 60)
    print("  売上管理 設定ウィザード")
    print("  .env 設定ファイルを作成します")
    print("=" * 60)
    print()

    if os.path.exists(ENV_FILE):
        print(f"既存の .env ファイルがあります: {ENV_FILE}")
        choice = input("上書きしますか？(y/N): ").strip().lower()
        if choice != "y":
            print("キャンセルしました。")
            return
        print()

    values = {}
    for key, desc, default, _section in CONFIG_ITEMS:
        default_hint = f" (既定値: {default})" if default else ""
        print(desc)
        value = input(f"  {key}={default_hint}: ").strip()
        values[key] = value or default
        print()

    with open(ENV_FILE, "w", encoding="utf-8") as f:
        f.write(build_env(values))

    print("=" * 60)
    print(f"  設定ファイルを作成しました: {ENV_FILE}")
    print()
    print("  データベースの初期化：")
    print("    python app.py init")
    print("=" * 60)


if __name__ == "__main__":
    main()
