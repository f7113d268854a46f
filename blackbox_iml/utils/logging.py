"""
日志配置
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..exceptions import InvalidConfigError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_level: str = 'INFO',
                  log_file: Optional[Union[str, Path]] = None) -> None:
    """
    设置日志配置

    Args:
        log_level: 日志级别
        log_file: 日志文件路径
    """
    level = getattr(logging, str(log_level).upper(), None)
    if not isinstance(level, int):
        raise InvalidConfigError(f"Unknown log level: {log_level}")

    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
