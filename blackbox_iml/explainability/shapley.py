"""
Shapley值解释器

特征数不超过阈值时精确枚举所有联盟；否则按随机特征顺序做蒙特卡洛采样：
每次抽取一个排列和一个参考行，按排列顺序把目标实例的特征逐个揭示到参考行中，
揭示前后的预测差记给该特征
"""

import numpy as np
import pandas as pd
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass
from math import factorial
from itertools import combinations
import logging

from .base import BaseExplainer, ExplanationResult
from .utils import format_feature_value, to_object_matrix
from ..exceptions import InvalidConfigError
from ..predictor.adapters import PredictionAdapter
from ..utils.config import ShapleyConfig
from ..utils.parallel import RandomStateLike, parallel_map, spawn_seeds

logger = logging.getLogger(__name__)

# 每个并行任务处理的采样次数
DRAWS_PER_TASK = 25


@dataclass(frozen=True)
class ShapleyResult(ExplanationResult):
    """
    Shapley值结果

    results：feature, phi, phi_var, feature_value（多输出时含 .class）。
    sum(phi) ≈ y_hat_interest - y_hat_average；method 记录使用的是 'exact' 还是 'sampling'
    """

    x_interest: pd.DataFrame
    y_hat_interest: Dict[str, float]
    y_hat_average: Dict[str, float]
    method: str
    sample_size: int
    efficiency_gap: Dict[str, float]

    def contributions(self, output: Optional[str] = None) -> Dict[str, float]:
        """特征到贡献值的映射"""
        table = self.results
        if '.class' in table.columns:
            if output is None:
                raise KeyError("output must be given for multi-output results")
            table = table.loc[table['.class'] == output]
        return dict(zip(table['feature'], table['phi']))


class ShapleyExplainer(BaseExplainer):
    """Shapley值解释器"""

    explanation_method = 'shapley'

    def __init__(self,
                 predictor: PredictionAdapter,
                 x_interest: Optional[Any] = None,
                 sample_size: int = 100,
                 method: str = 'auto',
                 exact_threshold: int = 10,
                 random_state: RandomStateLike = None,
                 n_jobs: int = 1,
                 verbose: bool = False):
        """
        初始化Shapley值解释器；给定 x_interest 时立即计算

        Args:
            predictor: 预测适配器
            x_interest: 要解释的实例
            sample_size: 蒙特卡洛采样次数
            method: 'auto'、'exact' 或 'sampling'
            exact_threshold: auto 模式下精确计算的最大特征数
            random_state: 随机种子
            n_jobs: 并行作业数
            verbose: 是否显示详细信息
        """
        super().__init__(predictor, random_state, n_jobs, verbose)

        self.config = ShapleyConfig(sample_size=sample_size, method=method, exact_threshold=exact_threshold)
        if method == 'exact' and len(self.feature_names) > exact_threshold:
            raise InvalidConfigError(
                f"Exact Shapley values are limited to {exact_threshold} features, "
                f"got {len(self.feature_names)}",
                details={'n_features': len(self.feature_names)}
            )

        reference_predictions = self.predictor.predict_values(self.data)
        self._average_prediction = reference_predictions.mean(axis=0)
        self._prediction_sd = reference_predictions.std(axis=0)

        if x_interest is not None:
            self.explain(x_interest)

    @classmethod
    def from_config(cls, predictor: PredictionAdapter, config: ShapleyConfig,
                    x_interest: Optional[Any] = None, **kwargs) -> 'ShapleyExplainer':
        return cls(predictor, x_interest=x_interest, sample_size=config.sample_size,
                   method=config.method, exact_threshold=config.exact_threshold, **kwargs)

    @property
    def resolved_method(self) -> str:
        if self.config.method != 'auto':
            return self.config.method
        return 'exact' if len(self.feature_names) <= self.config.exact_threshold else 'sampling'

    def _predict_matrix(self, matrix: np.ndarray) -> np.ndarray:
        return self.predictor.predict_values(pd.DataFrame(matrix, columns=self.feature_names))

    def _exact(self, x0: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        精确Shapley值：v(S) 为把 S 中特征设为目标实例取值后在参考数据上的平均预测
        """
        p = len(self.feature_names)
        reference = to_object_matrix(self.data)
        coalitions = [frozenset(c) for size in range(p + 1) for c in combinations(range(p), size)]

        def value(coalition: frozenset) -> np.ndarray:
            matrix = reference.copy()
            for j in coalition:
                matrix[:, j] = x0[j]
            return self._predict_matrix(matrix).mean(axis=0)

        values = dict(zip(coalitions, parallel_map(
            value, coalitions, n_jobs=self.n_jobs, desc="Shapley coalitions", verbose=self.verbose
        )))

        weights = [factorial(s) * factorial(p - s - 1) / factorial(p) for s in range(p)]
        phi = np.zeros((p, self.predictor.n_outputs))
        for coalition, v in values.items():
            for j in range(p):
                if j in coalition:
                    continue
                phi[j] += weights[len(coalition)] * (values[coalition | {j}] - v)

        return phi, np.zeros_like(phi)

    def _sample_deltas(self, x0: np.ndarray, n_draws: int, seed: int) -> np.ndarray:
        """返回 (n_draws, p, n_outputs) 的边际贡献"""
        rng = np.random.default_rng(seed)
        p = len(self.feature_names)
        reference = to_object_matrix(self.data)

        orders = [rng.permutation(p) for _ in range(n_draws)]
        rows = rng.integers(0, len(reference), size=n_draws)

        # 每次采样构造 p+1 行：参考行，然后逐个揭示目标实例的特征
        blocks = []
        for order, row in zip(orders, rows):
            current = reference[row].copy()
            block = [current.copy()]
            for j in order:
                current[j] = x0[j]
                block.append(current.copy())
            blocks.append(np.vstack(block))

        predictions = self._predict_matrix(np.vstack(blocks)).reshape(n_draws, p + 1, -1)
        steps = np.diff(predictions, axis=1)

        deltas = np.empty_like(steps)
        for i, order in enumerate(orders):
            deltas[i, order, :] = steps[i]
        return deltas

    def _sampling(self, x0: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        sample_size = self.config.sample_size
        chunks = [DRAWS_PER_TASK] * (sample_size // DRAWS_PER_TASK)
        if sample_size % DRAWS_PER_TASK:
            chunks.append(sample_size % DRAWS_PER_TASK)
        seeds = spawn_seeds(self.rng, len(chunks))

        parts = parallel_map(
            lambda task: self._sample_deltas(x0, task[0], task[1]),
            list(zip(chunks, seeds)), n_jobs=self.n_jobs,
            desc="Shapley sampling", verbose=self.verbose
        )
        deltas = np.concatenate(parts, axis=0)

        phi = deltas.mean(axis=0)
        phi_var = deltas.var(axis=0, ddof=1) if sample_size > 1 else np.zeros_like(phi)
        return phi, phi_var

    def explain(self, x_interest: Any) -> ShapleyResult:
        """
        计算目标实例的Shapley值；之前的采样全部丢弃

        Args:
            x_interest: 要解释的实例（Series、字典或单行DataFrame）

        Returns:
            ShapleyResult
        """
        x0_frame = self.schema.row_to_frame(x_interest)
        x0 = to_object_matrix(x0_frame)[0]
        self._result = None

        method = self.resolved_method
        self._log(f"Computing Shapley values ({method}) for {len(self.feature_names)} features")

        if method == 'exact':
            phi, phi_var = self._exact(x0)
        else:
            phi, phi_var = self._sampling(x0)

        y_interest = self.predictor.predict_values(x0_frame)[0]
        y_average = self._average_prediction
        gap = np.abs(phi.sum(axis=0) - (y_interest - y_average))

        if method == 'exact':
            tolerance = 1e-8 * np.maximum(1.0, np.abs(y_interest) + np.abs(y_average))
        else:
            tolerance = 4 * self._prediction_sd / np.sqrt(self.config.sample_size) + 1e-8
        if np.any(gap > tolerance):
            logger.warning(
                f"Shapley efficiency gap {gap.tolist()} exceeds tolerance {np.atleast_1d(tolerance).tolist()}"
            )

        per_output = []
        for k in range(self.predictor.n_outputs):
            per_output.append(pd.DataFrame({
                'feature': self.feature_names,
                'phi': phi[:, k],
                'phi_var': phi_var[:, k],
                'feature_value': [format_feature_value(name, x0[j]) for j, name in enumerate(self.feature_names)]
            }))

        outputs = self.predictor.output_names
        self._result = ShapleyResult(
            results=self._stack_outputs(per_output),
            feature_names=self.feature_names,
            explanation_method=self.explanation_method,
            metadata={
                'n_features': len(self.feature_names),
                'n_reference_rows': len(self.data),
                'exact_threshold': self.config.exact_threshold
            },
            x_interest=x0_frame.copy(),
            y_hat_interest=dict(zip(outputs, map(float, y_interest))),
            y_hat_average=dict(zip(outputs, map(float, y_average))),
            method=method,
            sample_size=0 if method == 'exact' else self.config.sample_size,
            efficiency_gap=dict(zip(outputs, map(float, gap)))
        )
        return self._result
