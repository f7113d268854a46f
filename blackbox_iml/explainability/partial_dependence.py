"""
部分依赖（PDP）与个体条件期望（ICE）

对网格上的每个取值，把参考数据中该特征的所有值替换为该取值，其他特征保持观测值，
得到每行一条ICE曲线；PDP为各网格点上的行平均
"""

import numpy as np
import pandas as pd
from typing import List, Dict, Any, Optional, Sequence, Union
from dataclasses import dataclass
from itertools import product
import logging

from .base import BaseExplainer, ExplanationResult
from .utils import feature_grid, nearest_grid_index
from ..exceptions import InvalidConfigError
from ..predictor.adapters import PredictionAdapter
from ..utils.config import PartialDependenceConfig
from ..utils.parallel import parallel_map

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartialDependenceResult(ExplanationResult):
    """
    部分依赖结果

    results 为长表：特征列、.value、.type ('pdp'/'ice')、.id（ICE行号）、
    多输出时还有 .class。ice 形状为 (n_rows, n_grid, n_outputs)，
    pdp 形状为 (n_grid, n_outputs)；已中心化时二者均为中心化后的值。
    """

    features: List[str]
    grid: pd.DataFrame
    pdp: np.ndarray
    ice: Optional[np.ndarray]
    output_names: List[str]
    center_at: Optional[Any]
    anchor_value: Optional[Any]

    @property
    def is_centered(self) -> bool:
        return self.center_at is not None

    def pdp_frame(self) -> pd.DataFrame:
        """仅PDP的行"""
        return self.results.loc[self.results['.type'] == 'pdp'].reset_index(drop=True)

    def ice_frame(self) -> pd.DataFrame:
        """仅ICE的行"""
        return self.results.loc[self.results['.type'] == 'ice'].reset_index(drop=True)


class PartialDependenceExplainer(BaseExplainer):
    """部分依赖/ICE解释器"""

    explanation_method = 'partial_dependence'

    def __init__(self,
                 predictor: PredictionAdapter,
                 feature: Optional[Union[str, Sequence[str]]] = None,
                 method: str = 'pdp+ice',
                 grid_size: int = 20,
                 grid_type: str = 'equidistant',
                 center_at: Optional[Any] = None,
                 n_jobs: int = 1,
                 verbose: bool = False):
        """
        初始化部分依赖解释器；给定 feature 时立即计算

        Args:
            predictor: 预测适配器
            feature: 特征名（或两个特征名的列表）
            method: 'pdp'、'ice' 或 'pdp+ice'
            grid_size: 数值特征的网格点数
            grid_type: 'equidistant' 或 'quantile'
            center_at: ICE曲线中心化的锚点
            n_jobs: 并行作业数
            verbose: 是否显示详细信息
        """
        super().__init__(predictor, None, n_jobs, verbose)

        self.config = PartialDependenceConfig(
            method=method, grid_size=grid_size, grid_type=grid_type, center_at=center_at
        )
        self.features: Optional[List[str]] = None

        # 当前特征的未中心化曲线缓存
        self._grid: Optional[pd.DataFrame] = None
        self._curves: Optional[np.ndarray] = None

        if feature is not None:
            self.set_feature(feature, center_at=center_at)

    @classmethod
    def from_config(cls, predictor: PredictionAdapter, config: PartialDependenceConfig,
                    feature: Optional[Union[str, Sequence[str]]] = None, **kwargs) -> 'PartialDependenceExplainer':
        return cls(predictor, feature=feature, method=config.method, grid_size=config.grid_size,
                   grid_type=config.grid_type, center_at=config.center_at, **kwargs)

    def _validate_features(self, feature: Union[str, Sequence[str]]) -> List[str]:
        features = self.schema.validate_features(feature)
        if not 1 <= len(features) <= 2:
            raise InvalidConfigError(
                f"Partial dependence supports one or two features, got {len(features)}"
            )
        if len(set(features)) != len(features):
            raise InvalidConfigError("Partial dependence features must be distinct")
        if len(features) == 2:
            if self.config.method == 'ice':
                raise InvalidConfigError("ICE curves are only defined for a single feature")
        return features

    def _build_grid(self, features: List[str]) -> pd.DataFrame:
        grids = [
            feature_grid(self.data[name], self.schema[name], self.config.grid_size, self.config.grid_type)
            for name in features
        ]
        points = list(product(*grids))
        return pd.DataFrame(points, columns=features)

    def _compute_curves(self, features: List[str], grid: pd.DataFrame) -> np.ndarray:
        """返回 (n_rows, n_grid, n_outputs) 的预测"""
        def run(i: int) -> np.ndarray:
            modified = self.data.copy()
            for name in features:
                modified[name] = [grid[name].iloc[i]] * len(modified)
            return self.predictor.predict_values(modified)

        predictions = parallel_map(
            run, range(len(grid)), n_jobs=self.n_jobs,
            desc="Partial dependence", verbose=self.verbose
        )
        return np.stack(predictions, axis=1)

    def set_feature(self, feature: Union[str, Sequence[str]], center_at: Optional[Any] = None) -> PartialDependenceResult:
        """
        切换目标特征并重新计算；之前的曲线与中心化设置全部失效

        Args:
            feature: 新的特征名（或两个特征名）
            center_at: 新特征的中心化锚点

        Returns:
            PartialDependenceResult
        """
        features = self._validate_features(feature)

        self.features = None
        self._grid = None
        self._curves = None
        self._result = None

        self._log(f"Computing partial dependence for {features}")
        grid = self._build_grid(features)
        curves = self._compute_curves(features, grid)

        self.features = features
        self._grid = grid
        self._curves = curves
        return self.center(center_at)

    def center(self, center_at: Optional[Any]) -> PartialDependenceResult:
        """
        以锚点处的取值为零中心化ICE/PDP曲线；None 表示取消中心化

        Args:
            center_at: 锚点（数值特征取最近的网格点，类别特征须为网格中的水平）

        Returns:
            PartialDependenceResult
        """
        if self.features is None:
            raise InvalidConfigError("No feature set; call set_feature() first")
        if center_at is not None and len(self.features) == 2:
            raise InvalidConfigError("Centering is only defined for a single feature")

        curves = self._curves
        anchor_value = None
        if center_at is not None:
            feature = self.features[0]
            grid_values = self._grid[feature].tolist()
            idx = nearest_grid_index(grid_values, center_at, self.schema[feature])
            anchor_value = grid_values[idx]
            curves = curves - curves[:, idx:idx + 1, :]

        self.config.center_at = center_at
        self._result = self._build_result(curves, center_at, anchor_value)
        return self._result

    def explain(self, feature: Optional[Union[str, Sequence[str]]] = None) -> PartialDependenceResult:
        """计算（或为新特征重新计算）部分依赖"""
        if feature is None:
            if self.features is None:
                raise InvalidConfigError("No feature given")
            feature = self.features
        same_feature = self._validate_features(feature) == self.features
        return self.set_feature(feature, center_at=self.config.center_at if same_feature else None)

    def _build_result(self, curves: np.ndarray, center_at: Any, anchor_value: Any) -> PartialDependenceResult:
        features = self.features
        grid = self._grid
        n_rows, n_grid, n_outputs = curves.shape
        pdp = curves.mean(axis=0)
        with_ice = len(features) == 1 and self.config.method in ('ice', 'pdp+ice')
        with_pdp = self.config.method in ('pdp', 'pdp+ice') or len(features) == 2

        per_output = []
        for k in range(n_outputs):
            frames = []
            if with_pdp:
                frame = grid.copy()
                frame['.value'] = pdp[:, k]
                frame['.type'] = 'pdp'
                frame['.id'] = pd.array([pd.NA] * n_grid, dtype='Int64')
                frames.append(frame)
            if with_ice:
                frame = pd.concat([grid] * n_rows, ignore_index=True)
                frame['.value'] = curves[:, :, k].reshape(-1)
                frame['.type'] = 'ice'
                frame['.id'] = pd.array(np.repeat(np.arange(1, n_rows + 1), n_grid), dtype='Int64')
                frames.append(frame)
            per_output.append(pd.concat(frames, ignore_index=True))

        results = self._stack_outputs(per_output)

        return PartialDependenceResult(
            results=results,
            feature_names=list(features),
            explanation_method=self.explanation_method,
            metadata={
                'method': self.config.method,
                'grid_size': self.config.grid_size,
                'grid_type': self.config.grid_type,
                'n_grid': n_grid,
                'n_samples': n_rows
            },
            features=list(features),
            grid=grid.copy(),
            pdp=pdp,
            ice=curves if len(features) == 1 else None,
            output_names=self.predictor.output_names,
            center_at=center_at,
            anchor_value=anchor_value
        )
