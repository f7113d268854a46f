"""
局部代理模型（LIME风格）

在目标实例周围采样邻域，按距离加权，用加权线性回归近似黑盒模型
"""

import numpy as np
import pandas as pd
from typing import List, Dict, Any, Optional
from dataclasses import dataclass
import logging
from sklearn.linear_model import LinearRegression, lars_path
from sklearn.metrics import r2_score

from .base import BaseExplainer, ExplanationResult
from .utils import (
    exponential_kernel,
    format_feature_value,
    instance_distances,
    recode_features,
    sample_neighbourhood
)
from ..exceptions import DegenerateFitError, InvalidConfigError
from ..predictor.adapters import PredictionAdapter
from ..utils.config import LocalSurrogateConfig
from ..utils.parallel import RandomStateLike

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalSurrogateResult(ExplanationResult):
    """
    局部代理模型结果

    results 为系数表：feature, feature_value, beta, x_recoded, effect（多输出时含 .class）
    """

    x_interest: pd.DataFrame
    intercept: Dict[str, float]
    fidelity: Dict[str, float]
    prediction: Dict[str, float]
    black_box_prediction: Dict[str, float]
    n_samples: int
    kernel_width: float

    def coefficients(self, output: Optional[str] = None) -> Dict[str, float]:
        """特征到系数的映射"""
        table = self.results
        if '.class' in table.columns:
            if output is None:
                raise KeyError("output must be given for multi-output results")
            table = table.loc[table['.class'] == output]
        return dict(zip(table['feature'], table['beta']))


class LocalSurrogateExplainer(BaseExplainer):
    """局部代理模型解释器"""

    explanation_method = 'local_surrogate'

    def __init__(self,
                 predictor: PredictionAdapter,
                 x_interest: Optional[Any] = None,
                 n_samples: int = 1000,
                 k: Optional[int] = None,
                 kernel_width: Optional[float] = None,
                 distance: str = 'euclidean',
                 feature_selection: str = 'lasso_path',
                 random_state: RandomStateLike = None,
                 verbose: bool = False):
        """
        初始化局部代理模型解释器；给定 x_interest 时立即计算

        Args:
            predictor: 预测适配器
            x_interest: 要解释的实例
            n_samples: 邻域样本数
            k: 保留的特征数，None 表示全部
            kernel_width: 核宽度，默认 0.75 * sqrt(特征数)
            distance: 'euclidean' 或 'gower'
            feature_selection: 'lasso_path' 或 'none'
            random_state: 随机种子
            verbose: 是否显示详细信息
        """
        super().__init__(predictor, random_state, 1, verbose)

        self.config = LocalSurrogateConfig(
            n_samples=n_samples, k=k, kernel_width=kernel_width,
            distance=distance, feature_selection=feature_selection
        )
        self.kernel_width = kernel_width if kernel_width is not None else 0.75 * np.sqrt(len(self.feature_names))

        self._models: Dict[str, LinearRegression] = {}
        self._selected: Dict[str, List[int]] = {}
        self._x_interest: Optional[pd.DataFrame] = None

        if x_interest is not None:
            self.explain(x_interest)

    @classmethod
    def from_config(cls, predictor: PredictionAdapter, config: LocalSurrogateConfig,
                    x_interest: Optional[Any] = None, **kwargs) -> 'LocalSurrogateExplainer':
        return cls(predictor, x_interest=x_interest, n_samples=config.n_samples, k=config.k,
                   kernel_width=config.kernel_width, distance=config.distance,
                   feature_selection=config.feature_selection, **kwargs)

    def _select_features(self, design: np.ndarray, y: np.ndarray, weights: np.ndarray) -> List[int]:
        """沿加权lasso路径选出最先进入模型的 k 个特征"""
        n_features = design.shape[1]
        k = self.config.k
        if self.config.feature_selection == 'none' or k is None or k >= n_features:
            return list(range(n_features))

        sqrt_w = np.sqrt(weights)
        total = weights.sum()
        x_centered = (design - (weights @ design) / total) * sqrt_w[:, None]
        y_centered = (y - (weights @ y) / total) * sqrt_w

        _, _, coefs = lars_path(x_centered, y_centered, method='lasso')
        selected: List[int] = []
        for step in range(coefs.shape[1]):
            active = np.flatnonzero(coefs[:, step])
            if len(active) >= k:
                order = np.argsort(-np.abs(coefs[active, step]), kind='mergesort')
                selected = sorted(active[order[:k]].tolist())
                break
            selected = active.tolist()

        if not selected:
            raise DegenerateFitError(
                "No feature enters the lasso path; the black box is constant in the neighbourhood"
            )
        if len(selected) < k:
            logger.debug(f"Lasso path activated only {len(selected)} of {k} requested features")
        return selected

    def _check_rank(self, design: np.ndarray, weights: np.ndarray, selected: List[int]) -> None:
        columns = np.column_stack([np.ones(len(design)), design[:, selected]])
        weighted = columns * np.sqrt(weights)[:, None]
        rank = np.linalg.matrix_rank(weighted)
        if rank < weighted.shape[1]:
            total = weights.sum()
            constant = []
            for j in selected:
                mean = (weights @ design[:, j]) / total
                if np.allclose(design[weights > 0, j], mean):
                    constant.append(self.feature_names[j])
            raise DegenerateFitError(
                f"Weighted design matrix is rank deficient (rank {rank} < {weighted.shape[1]}); "
                f"constant features in the neighbourhood: {constant}",
                details={'rank': int(rank), 'n_columns': int(weighted.shape[1]), 'constant_features': constant}
            )

    def explain(self, x_interest: Any) -> LocalSurrogateResult:
        """
        解释单个实例；每次都重新采样邻域

        Args:
            x_interest: 要解释的实例（Series、字典或单行DataFrame）

        Returns:
            LocalSurrogateResult
        """
        x0 = self.schema.row_to_frame(x_interest)

        # 先清空旧状态，失败时不会留下上一个实例的模型
        self._models = {}
        self._selected = {}
        self._x_interest = None
        self._result = None

        self._log(f"Sampling {self.config.n_samples} neighbours for local surrogate")
        samples = sample_neighbourhood(x0, self.data, self.schema, self.config.n_samples, self.rng)
        y_hat = self.predictor.predict_values(samples)

        distances = instance_distances(samples, x0, self.data, self.schema, self.config.distance)
        weights = exponential_kernel(distances, self.kernel_width)
        if not np.any(weights > 0):
            raise DegenerateFitError("All neighbourhood weights are zero; increase kernel_width")

        design = recode_features(samples, x0, self.schema)
        x_recoded = recode_features(x0, x0, self.schema)[0]

        models = {}
        selections = {}
        per_output = []
        intercepts, fidelity, predictions, black_box = {}, {}, {}, {}
        for k, output in enumerate(self.predictor.output_names):
            y = y_hat[:, k]
            selected = self._select_features(design, y, weights)
            self._check_rank(design, weights, selected)

            model = LinearRegression()
            model.fit(design[:, selected], y, sample_weight=weights)
            fitted = model.predict(design[:, selected])

            models[output] = model
            selections[output] = selected
            intercepts[output] = float(model.intercept_)
            fidelity[output] = float(r2_score(y, fitted, sample_weight=weights))
            predictions[output] = float(model.predict(x_recoded[selected].reshape(1, -1))[0])
            black_box[output] = float(y[0])

            rows = []
            for beta, j in zip(model.coef_, selected):
                name = self.feature_names[j]
                rows.append({
                    'feature': name,
                    'feature_value': format_feature_value(name, x0[name].iloc[0]),
                    'beta': float(beta),
                    'x_recoded': float(x_recoded[j]),
                    'effect': float(beta * x_recoded[j])
                })
            per_output.append(pd.DataFrame(rows, columns=['feature', 'feature_value', 'beta', 'x_recoded', 'effect']))

        self._models = models
        self._selected = selections
        self._x_interest = x0

        self._result = LocalSurrogateResult(
            results=self._stack_outputs(per_output),
            feature_names=self.feature_names,
            explanation_method=self.explanation_method,
            metadata={
                'distance': self.config.distance,
                'feature_selection': self.config.feature_selection,
                'k': self.config.k
            },
            x_interest=x0.copy(),
            intercept=intercepts,
            fidelity=fidelity,
            prediction=predictions,
            black_box_prediction=black_box,
            n_samples=self.config.n_samples,
            kernel_width=float(self.kernel_width)
        )

        self._log(f"Local surrogate fidelity: {fidelity}")
        return self._result

    def predict(self, newdata: pd.DataFrame) -> pd.DataFrame:
        """
        用当前的局部代理模型预测

        Args:
            newdata: 新数据

        Returns:
            每个输出一列的预测
        """
        if self._x_interest is None:
            raise InvalidConfigError("No local model fitted; call explain() first")

        newdata = self.schema.conform(newdata)
        design = recode_features(newdata, self._x_interest, self.schema)
        return pd.DataFrame({
            output: model.predict(design[:, self._selected[output]])
            for output, model in self._models.items()
        })
