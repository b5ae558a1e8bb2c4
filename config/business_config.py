"""
业务配置接口 - 支持可替换的业务配置

新项目可以实现自己的业务配置，替换默认配置。
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any


class BusinessConfig(ABC):
    """业务配置抽象基类"""

    @abstractmethod
    def get_sale_types(self) -> List[Dict[str, Any]]:
        """获取初始化时写入的売上種類列表（不含未分類）"""
        pass

    @abstractmethod
    def get_uncategorized_name(self) -> str:
        """获取未分类（哨兵）売上種類的显示名称"""
        pass

    @abstractmethod
    def get_unknown_label(self) -> str:
        """获取缺失顾客/外注先时使用的占位名称"""
        pass


class DefaultSalesConfig(BusinessConfig):
    """默认的売上管理配置"""

    def get_sale_types(self) -> List[Dict[str, Any]]:
        return [
            {"name": "制作", "description": "制作案件"},
            {"name": "保守", "description": "保守・運用"},
            {"name": "コンサルティング", "description": None},
        ]

    def get_uncategorized_name(self) -> str:
        return "未分類"

    def get_unknown_label(self) -> str:
        return "不明"


# 全局业务配置实例（可以在 app.py 中替换）
business_config: BusinessConfig = DefaultSalesConfig()
