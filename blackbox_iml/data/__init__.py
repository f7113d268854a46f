"""数据结构模块

提供特征类型声明与数据校验功能
"""

from .schema import FeatureSpec, DatasetSchema

__all__ = [
    'FeatureSpec',
    'DatasetSchema'
]
