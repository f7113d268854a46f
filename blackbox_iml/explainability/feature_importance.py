"""
特征重要性分析器

基于排列的敏感度：打乱某一特征列，比较打乱前后的预测损失
"""

import numpy as np
import pandas as pd
from typing import List, Dict, Any, Optional, Sequence, Set, Tuple, Union
from dataclasses import dataclass
import logging

from .base import BaseExplainer, ExplanationResult
from .metrics import LossFunction, get_loss
from ..exceptions import InvalidConfigError, MissingGroundTruthError
from ..predictor.adapters import PredictionAdapter, SklearnClassifierAdapter
from ..utils.config import FeatureImportanceConfig
from ..utils.parallel import RandomStateLike, parallel_map, spawn_seeds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportanceResult(ExplanationResult):
    """
    特征重要性结果

    results 每个特征一行（按重要性降序）：feature, original_error,
    permutation_error, importance, importance_05, importance_95, importance_std
    """

    repetitions: pd.DataFrame
    original_error: float
    loss: str
    compare: str
    method: str
    n_repetitions: int
    infinite_ratio: Set[str]

    def importance(self, feature: str) -> float:
        """获取单个特征的重要性"""
        row = self.results.loc[self.results['feature'] == feature]
        if row.empty:
            raise KeyError(feature)
        return float(row['importance'].iloc[0])

    def ranking(self) -> List[str]:
        """按重要性降序的特征名"""
        return self.results['feature'].tolist()


class FeatureImportanceExplainer(BaseExplainer):
    """特征重要性解释器"""

    explanation_method = 'feature_importance'

    def __init__(self,
                 predictor: PredictionAdapter,
                 loss: Union[str, LossFunction] = 'mae',
                 compare: str = 'ratio',
                 n_repetitions: int = 5,
                 method: str = 'shuffle',
                 random_state: RandomStateLike = None,
                 n_jobs: int = 1,
                 verbose: bool = False):
        """
        初始化特征重要性解释器

        Args:
            predictor: 预测适配器
            loss: 损失函数名或可调用对象
            compare: 'ratio'（打乱后/原始）或 'difference'（打乱后-原始）
            n_repetitions: 打乱重复次数
            method: 'shuffle' 随机打乱，'cartesian' 全部行对组合（确定性）
            random_state: 随机种子
            n_jobs: 并行作业数
            verbose: 是否显示详细信息
        """
        super().__init__(predictor, random_state, n_jobs, verbose)

        self.config = FeatureImportanceConfig(
            loss=loss, compare=compare, n_repetitions=n_repetitions, method=method
        )
        self.loss_name, self.loss_fn = get_loss(loss)
        if self.loss_name == 'ce' and isinstance(predictor.model_adapter, SklearnClassifierAdapter):
            raise InvalidConfigError(
                "Loss 'ce' compares class labels, but the classifier adapter returns probabilities; "
                "use loss='logloss' instead"
            )

        if predictor.n_outputs > 1:
            raise InvalidConfigError(
                "Feature importance needs a single output; select one with class_",
                details={'outputs': predictor.output_names}
            )

    @classmethod
    def from_config(cls, predictor: PredictionAdapter, config: FeatureImportanceConfig, **kwargs) -> 'FeatureImportanceExplainer':
        return cls(predictor, loss=config.loss, compare=config.compare,
                   n_repetitions=config.n_repetitions, method=config.method, **kwargs)

    def _resolve_y(self, y: Optional[Sequence[Any]]) -> np.ndarray:
        if y is None:
            y = self.predictor.y
        if y is None:
            raise MissingGroundTruthError(
                "Target variable y is required for permutation importance"
            )
        y = np.asarray(y)
        if len(y) != len(self.data):
            raise InvalidConfigError(f"y must have {len(self.data)} values, got {len(y)}")
        return y

    def _binary_labels(self, y: np.ndarray) -> np.ndarray:
        """logloss 需要 0/1 标签；其他标签按是否等于所选输出列名映射为 0/1"""
        if set(pd.unique(y).tolist()) <= {0, 1}:
            return y
        positive = self.predictor.output_names[0]
        labels = np.asarray(y).astype(str) == positive
        if not labels.any():
            raise InvalidConfigError(
                f"Loss 'logloss' needs 0/1 labels or labels matching the selected output '{positive}'",
                details={'labels': sorted(map(str, pd.unique(y)))}
            )
        return labels.astype(int)

    def _loss(self, y: np.ndarray, data: pd.DataFrame) -> float:
        y_hat = self.predictor.predict_values(data)[:, 0]
        return float(self.loss_fn(y, y_hat))

    def _compare(self, original_error: float, permutation_error: float) -> float:
        if self.config.compare == 'difference':
            return permutation_error - original_error
        if original_error == 0:
            # 原始损失为0：有退化则为无穷大，无退化视为不变
            return np.inf if permutation_error > 0 else 1.0
        return permutation_error / original_error

    def _shuffle_errors(self, feature: str, y: np.ndarray, seed: int) -> List[float]:
        rng = np.random.default_rng(seed)
        column = self.data[feature].astype(object).to_numpy()
        errors = []
        for _ in range(self.config.n_repetitions):
            permuted = self.data.copy()
            permuted[feature] = column[rng.permutation(len(column))]
            errors.append(self._loss(y, permuted))
        return errors

    def _cartesian_errors(self, feature: str, y: np.ndarray) -> List[float]:
        n = len(self.data)
        if n < 2:
            raise InvalidConfigError("Cartesian importance needs at least two rows")
        rows, donors = np.where(~np.eye(n, dtype=bool))
        combined = self.data.iloc[rows].reset_index(drop=True)
        combined[feature] = self.data[feature].astype(object).to_numpy()[donors]
        return [self._loss(y[rows], combined)]

    def explain(self,
                y: Optional[Sequence[Any]] = None,
                features: Optional[Sequence[str]] = None) -> ImportanceResult:
        """
        计算特征重要性

        Args:
            y: 真实标签，None 时使用预测适配器中的标签
            features: 要评估的特征，默认全部

        Returns:
            ImportanceResult: 按重要性降序排列的结果
        """
        y = self._resolve_y(y)
        features = self.schema.validate_features(features) if features is not None else self.feature_names
        if not features:
            raise InvalidConfigError("At least one feature is required for importance")
        if self.loss_name == 'logloss':
            y = self._binary_labels(y)

        original_error = self._loss(y, self.data)
        if not np.isfinite(original_error):
            raise InvalidConfigError(
                f"Loss '{self.loss_name}' is not finite on the unpermuted data",
                details={'original_error': original_error}
            )

        self._log(
            f"Computing {self.config.method} importance for {len(features)} features "
            f"(loss={self.loss_name}, compare={self.config.compare})"
        )

        seeds = spawn_seeds(self.rng, len(features))

        def run(task: Tuple[str, int]) -> List[float]:
            feature, seed = task
            if self.config.method == 'cartesian':
                return self._cartesian_errors(feature, y)
            return self._shuffle_errors(feature, y, seed)

        all_errors = parallel_map(
            run, zip(features, seeds), n_jobs=self.n_jobs,
            desc="Feature importance", verbose=self.verbose
        )

        rows = []
        repetition_rows = []
        infinite_ratio = set()
        for feature, errors in zip(features, all_errors):
            importances = np.array([self._compare(original_error, err) for err in errors])
            for rep, (err, imp) in enumerate(zip(errors, importances), 1):
                repetition_rows.append({
                    'feature': feature,
                    'repetition': rep,
                    'permutation_error': err,
                    'importance': imp
                })

            if np.isinf(importances).any():
                infinite_ratio.add(feature)
                importance = np.inf
                spread = (np.inf, np.inf, np.nan)
            else:
                importance = float(np.mean(importances))
                spread = (
                    float(np.quantile(importances, 0.05)),
                    float(np.quantile(importances, 0.95)),
                    float(np.std(importances, ddof=1)) if len(importances) > 1 else 0.0
                )

            rows.append({
                'feature': feature,
                'original_error': original_error,
                'permutation_error': float(np.mean(errors)),
                'importance': importance,
                'importance_05': spread[0],
                'importance_95': spread[1],
                'importance_std': spread[2]
            })

        if infinite_ratio:
            logger.warning(
                f"Baseline loss is zero; importance ratio is infinite for {sorted(infinite_ratio)}"
            )

        results = pd.DataFrame(rows)
        results = results.sort_values(
            ['importance', 'permutation_error'], ascending=False, kind='mergesort'
        ).reset_index(drop=True)

        self._result = ImportanceResult(
            results=results,
            feature_names=list(features),
            explanation_method=self.explanation_method,
            metadata={
                'n_samples': len(self.data),
                'n_features': len(features),
                'n_jobs': self.n_jobs
            },
            repetitions=pd.DataFrame(repetition_rows),
            original_error=original_error,
            loss=self.loss_name,
            compare=self.config.compare,
            method=self.config.method,
            n_repetitions=1 if self.config.method == 'cartesian' else self.config.n_repetitions,
            infinite_ratio=infinite_ratio
        )

        self._log(f"Most important feature: {results['feature'].iloc[0]}")
        return self._result
