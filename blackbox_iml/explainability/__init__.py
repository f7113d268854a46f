"""模型解释性模块

提供特征重要性、部分依赖/ICE、局部代理模型、Shapley值与全局代理树
"""

from .base import ExplanationResult, BaseExplainer
from .feature_importance import FeatureImportanceExplainer, ImportanceResult
from .partial_dependence import PartialDependenceExplainer, PartialDependenceResult
from .local_model import LocalSurrogateExplainer, LocalSurrogateResult
from .shapley import ShapleyExplainer, ShapleyResult
from .tree_surrogate import TreeSurrogateExplainer, TreeSurrogateResult
from .metrics import LOSSES, get_loss

__all__ = [
    'ExplanationResult',
    'BaseExplainer',
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
    'LOSSES',
    'get_loss'
]
