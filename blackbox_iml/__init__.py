"""黑盒模型解释工具

预测适配器 + 特征重要性、部分依赖/ICE、局部代理模型、Shapley值、全局代理树
"""

from .exceptions import (
    InterpretationError,
    AdapterShapeError,
    MissingGroundTruthError,
    UnknownFeatureError,
    DegenerateFitError,
    InvalidConfigError,
    SchemaMismatchError
)
from .data import FeatureSpec, DatasetSchema
from .predictor import (
    ModelAdapter,
    FunctionModelAdapter,
    SklearnRegressorAdapter,
    SklearnClassifierAdapter,
    PredictionAdapter,
    make_predictor
)
from .explainability import (
    ExplanationResult,
    FeatureImportanceExplainer,
    ImportanceResult,
    PartialDependenceExplainer,
    PartialDependenceResult,
    LocalSurrogateExplainer,
    LocalSurrogateResult,
    ShapleyExplainer,
    ShapleyResult,
    TreeSurrogateExplainer,
    TreeSurrogateResult
)
from .utils import InterpretationConfig, ConfigManager, get_config, setup_logging

__version__ = '0.1.0'

__all__ = [
    'InterpretationError',
    'AdapterShapeError',
    'MissingGroundTruthError',
    'UnknownFeatureError',
    'DegenerateFitError',
    'InvalidConfigError',
    'SchemaMismatchError',
    'FeatureSpec',
    'DatasetSchema',
    'ModelAdapter',
    'FunctionModelAdapter',
    'SklearnRegressorAdapter',
    'SklearnClassifierAdapter',
    'PredictionAdapter',
    'make_predictor',
    'ExplanationResult',
    'FeatureImportanceExplainer',
    'ImportanceResult',
    'PartialDependenceExplainer',
    'PartialDependenceResult',
    'LocalSurrogateExplainer',
    'LocalSurrogateResult',
    'ShapleyExplainer',
    'ShapleyResult',
    'TreeSurrogateExplainer',
    'TreeSurrogateResult',
    'InterpretationConfig',
    'ConfigManager',
    'get_config',
    'setup_logging'
]
