"""初始化数据库"""
import sys
import os

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import DatabaseManager
from config.business_config import business_config
from loguru import logger


def seed_sale_types(db: DatabaseManager) -> None:
    """写入默认売上種類（从 business_config 获取），已存在的跳过。"""
    for sale_type in business_config.get_sale_types():
        db.sale_types.get_or_create(
            name=sale_type['name'],
            description=sale_type.get('description'),
        )
        logger.info(f"Seeded sale type: {sale_type['name']}")


def init_database(database_url=None) -> DatabaseManager:
    """初始化数据库和种子数据"""
    logger.info("Initializing database...")

    db = DatabaseManager(database_url)

    # 创建所有表（同时写入未分类哨兵）
    logger.info("Creating tables...")
    db.create_tables()

    logger.info("Inserting seed data...")
    seed_sale_types(db)

    db.log_summary()
    logger.info("Database initialization completed!")
    return db


if __name__ == "__main__":
    init_database().close()
