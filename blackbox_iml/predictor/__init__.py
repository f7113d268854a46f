"""预测适配模块

将任意模型或预测函数统一为“输入数据表，输出预测表”的调用接口
"""

from .adapters import (
    ModelAdapter,
    FunctionModelAdapter,
    SklearnRegressorAdapter,
    SklearnClassifierAdapter,
    PredictionAdapter,
    make_predictor,
    MODEL_FAMILIES
)

__all__ = [
    'ModelAdapter',
    'FunctionModelAdapter',
    'SklearnRegressorAdapter',
    'SklearnClassifierAdapter',
    'PredictionAdapter',
    'make_predictor',
    'MODEL_FAMILIES'
]
