"""
解释性工具异常定义

所有引擎级错误都以具体异常同步抛出，不做静默吞掉或自动重试
"""

from typing import Any, Dict, Optional


class InterpretationError(Exception):
    """解释性工具基础异常"""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class AdapterShapeError(InterpretationError):
    """模型输出形状不一致"""
    pass


class MissingGroundTruthError(InterpretationError):
    """缺少真实标签"""
    pass


class UnknownFeatureError(InterpretationError, KeyError):
    """特征不在数据结构中"""

    def __str__(self) -> str:
        # KeyError 默认会给消息加引号
        return str(self.args[0]) if self.args else ''


class DegenerateFitError(InterpretationError):
    """局部回归无法求解（设计矩阵秩亏）"""
    pass


class InvalidConfigError(InterpretationError, ValueError):
    """配置参数无效"""
    pass


class SchemaMismatchError(InterpretationError):
    """数据与声明的特征类型不匹配"""
    pass
