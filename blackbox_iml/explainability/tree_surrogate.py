"""
全局代理决策树

用黑盒模型在参考数据上的预测作为目标，拟合一棵深度受限的决策树
"""

import numpy as np
import pandas as pd
from typing import List, Dict, Any, Optional
from dataclasses import dataclass
import logging
from sklearn.compose import ColumnTransformer
from sklearn.metrics import accuracy_score, r2_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor, export_text

from .base import BaseExplainer, ExplanationResult
from ..exceptions import InvalidConfigError
from ..predictor.adapters import PredictionAdapter
from ..utils.config import TreeSurrogateConfig
from ..utils.parallel import RandomStateLike, spawn_seeds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TreeSurrogateResult(ExplanationResult):
    """
    代理树结果

    results 每个参考行一行：.node（叶节点）、.path（决策规则）、
    黑盒预测（.y_hat_<输出>）与代理树预测（.y_hat_tree_<输出>）；
    分类任务为最大输出列 .target 与代理树预测 .target_tree
    """

    task: str
    max_depth: int
    r_squared: Dict[str, float]
    n_leaves: int
    rules: str


class TreeSurrogateExplainer(BaseExplainer):
    """全局代理树解释器"""

    explanation_method = 'tree_surrogate'

    def __init__(self,
                 predictor: PredictionAdapter,
                 max_depth: int = 2,
                 task: str = 'auto',
                 random_state: RandomStateLike = None,
                 verbose: bool = False):
        """
        初始化代理树解释器并立即拟合

        Args:
            predictor: 预测适配器
            max_depth: 树的最大深度
            task: 'auto'/'regression'（对预测表做回归）或 'classification'（对最大输出列分类）
            random_state: 随机种子
            verbose: 是否显示详细信息
        """
        super().__init__(predictor, random_state, 1, verbose)

        self.config = TreeSurrogateConfig(max_depth=max_depth, task=task)
        self.task = 'regression' if task == 'auto' else task
        if self.task == 'classification' and predictor.n_outputs < 2:
            raise InvalidConfigError("Classification surrogate needs at least two model outputs")

        self.pipeline: Optional[Pipeline] = None
        self.explain()

    @classmethod
    def from_config(cls, predictor: PredictionAdapter, config: TreeSurrogateConfig, **kwargs) -> 'TreeSurrogateExplainer':
        return cls(predictor, max_depth=config.max_depth, task=config.task, **kwargs)

    def _build_pipeline(self, seed: int) -> Pipeline:
        categorical = self.schema.categorical_features
        encoder = OneHotEncoder(
            categories=[list(self.schema[name].levels) for name in categorical],
            handle_unknown='ignore',
            sparse_output=False
        )
        preprocessor = ColumnTransformer(
            [('categorical', encoder, categorical)],
            remainder='passthrough',
            verbose_feature_names_out=False
        )
        if self.task == 'classification':
            tree = DecisionTreeClassifier(max_depth=self.config.max_depth, random_state=seed)
        else:
            tree = DecisionTreeRegressor(max_depth=self.config.max_depth, random_state=seed)
        return Pipeline([('preprocessor', preprocessor), ('tree', tree)])

    @staticmethod
    def _leaf_paths(tree, feature_names: List[str]) -> Dict[int, str]:
        """每个叶节点从根出发的决策规则"""
        structure = tree.tree_
        paths: Dict[int, str] = {}
        stack = [(0, [])]
        while stack:
            node, conditions = stack.pop()
            left, right = structure.children_left[node], structure.children_right[node]
            if left == right:
                paths[node] = ' & '.join(conditions) if conditions else 'root'
                continue
            name = feature_names[structure.feature[node]]
            threshold = structure.threshold[node]
            stack.append((right, conditions + [f"{name} > {threshold:.4g}"]))
            stack.append((left, conditions + [f"{name} <= {threshold:.4g}"]))
        return paths

    def explain(self) -> TreeSurrogateResult:
        """
        拟合代理树

        Returns:
            TreeSurrogateResult
        """
        y_hat = self.predictor.predict(self.data)
        outputs = self.predictor.output_names
        seed = spawn_seeds(self.rng, 1)[0]

        pipeline = self._build_pipeline(seed)
        if self.task == 'classification':
            target = y_hat.idxmax(axis=1).to_numpy()
        else:
            target = y_hat.to_numpy() if len(outputs) > 1 else y_hat.iloc[:, 0].to_numpy()

        self._log(f"Fitting surrogate tree (max_depth={self.config.max_depth}, task={self.task})")
        pipeline.fit(self.data, target)

        preprocessor = pipeline.named_steps['preprocessor']
        tree = pipeline.named_steps['tree']
        encoded_names = [str(name) for name in preprocessor.get_feature_names_out()]
        leaves = tree.apply(preprocessor.transform(self.data))
        paths = self._leaf_paths(tree, encoded_names)

        results = pd.DataFrame({'.node': leaves, '.path': [paths[leaf] for leaf in leaves]})
        for name in outputs:
            results[f'.y_hat_{name}'] = y_hat[name].to_numpy()

        if self.task == 'classification':
            predicted = pipeline.predict(self.data)
            results['.target'] = target
            results['.target_tree'] = predicted
            r_squared = {'accuracy': float(accuracy_score(target, predicted))}
        else:
            predicted = np.asarray(pipeline.predict(self.data)).reshape(len(self.data), -1)
            r_squared = {}
            for k, name in enumerate(outputs):
                results[f'.y_hat_tree_{name}'] = predicted[:, k]
                r_squared[name] = float(r2_score(y_hat[name].to_numpy(), predicted[:, k]))

        self.pipeline = pipeline
        self._result = TreeSurrogateResult(
            results=results,
            feature_names=self.feature_names,
            explanation_method=self.explanation_method,
            metadata={
                'n_samples': len(self.data),
                'encoded_features': encoded_names
            },
            task=self.task,
            max_depth=self.config.max_depth,
            r_squared=r_squared,
            n_leaves=int(tree.get_n_leaves()),
            rules=export_text(tree, feature_names=encoded_names)
        )

        self._log(f"Surrogate tree fidelity: {r_squared}")
        return self._result

    def predict(self, newdata: pd.DataFrame) -> pd.DataFrame:
        """
        用代理树预测新数据

        Args:
            newdata: 新数据

        Returns:
            回归任务每个输出一列；分类任务为 'class' 列
        """
        newdata = self.schema.conform(newdata)
        predicted = self.pipeline.predict(newdata)
        if self.task == 'classification':
            return pd.DataFrame({'class': predicted})
        predicted = np.asarray(predicted).reshape(len(newdata), -1)
        return pd.DataFrame(predicted, columns=self.predictor.output_names)
