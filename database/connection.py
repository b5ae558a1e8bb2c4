"""数据库连接与基础设施管理。

本模块负责数据库的底层基础设施，包括：
- 数据库引擎创建
- 会话（Session）管理
- 数据库表创建
- 原始SQL执行

本模块不包含任何业务逻辑，仅提供数据库基础操作。
"""
from pathlib import Path
from typing import Optional, Any
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .models import Base
from config.settings import settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseConnection:
    """数据库连接管理器。

    负责数据库引擎的创建和会话管理。SQLite 连接会自动开启外键约束，
    保证依赖行必须先于所属行删除。

    Attributes:
        database_url: 数据库连接URL。
        engine: SQLAlchemy引擎对象。
        SessionLocal: 会话工厂。

    Example:
        ```python
        conn = DatabaseConnection("sqlite:///data/sales.db")

        # 使用默认配置
        conn = DatabaseConnection()
        ```
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        """初始化数据库连接。

        Args:
            database_url: 数据库连接URL，如果为None则使用settings中的配置。
        """
        self.database_url: str = database_url or settings.database_url

        if self.database_url.startswith("sqlite"):
            db_file = make_url(self.database_url).database
            if db_file and db_file != ":memory:":
                Path(db_file).parent.mkdir(parents=True, exist_ok=True)
            self.engine: Engine = create_engine(
                self.database_url,
                echo=False,
                connect_args={"check_same_thread": False}
            )
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        else:
            self.engine = create_engine(
                self.database_url, echo=False, pool_pre_ping=True
            )
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False,
            expire_on_commit=False
        )

    def create_tables(self) -> None:
        """创建所有数据库表。

        根据 models.py 中定义的所有模型创建对应的数据库表。
        如果表已存在则不会重复创建（幂等操作）。
        """
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """获取数据库会话。"""
        return self.SessionLocal()

    def execute_raw_sql(self, sql: str, params: Optional[dict] = None) -> Any:
        """执行原始SQL语句。

        注意：此方法应谨慎使用，建议优先使用ORM方法。

        Args:
            sql: SQL语句字符串。
            params: SQL参数字典（可选）。

        Returns:
            SQL执行结果的所有行。
        """
        with self.get_session() as session:
            result = session.execute(text(sql), params or {})
            rows = result.fetchall() if result.returns_rows else []
            session.commit()
            return rows

    def close(self) -> None:
        """关闭数据库连接，释放引擎资源。"""
        if self.engine is not None:
            self.engine.dispose()
