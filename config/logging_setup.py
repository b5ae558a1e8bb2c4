"""日志配置。

基于 loguru，根据 settings 中的 log_level / log_file 配置输出目标。
"""
import sys
from typing import Optional

from loguru import logger

from config.settings import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | <level>{message}</level>"
)


def setup_logging(level: Optional[str] = None,
                  log_file: Optional[str] = None) -> None:
    """配置 loguru 的输出目标。

    Args:
        level: 日志级别，默认取 settings.log_level。
        log_file: 日志文件路径（可选），默认取 settings.log_file。
    """
    level = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)
    if log_file:
        logger.add(log_file, format=LOG_FORMAT, level=level,
                   rotation="10 MB", encoding="utf-8")
