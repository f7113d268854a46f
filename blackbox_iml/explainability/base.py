"""
模型解释性基础类
"""

import numpy as np
import pandas as pd
from typing import List, Dict, Any, Optional
from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

from ..exceptions import InvalidConfigError
from ..predictor.adapters import PredictionAdapter
from ..utils.parallel import RandomStateLike, resolve_rng

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExplanationResult:
    """
    解释结果基础类

    由一次引擎调用创建，创建后不再修改；results 是交给绘图组件的稳定表格表示
    """

    results: pd.DataFrame
    feature_names: List[str]
    explanation_method: str
    metadata: Dict[str, Any]

    def to_frame(self) -> pd.DataFrame:
        """表格表示（副本）"""
        return self.results.copy()

    def to_records(self) -> List[Dict[str, Any]]:
        """记录列表表示"""
        return self.results.to_dict('records')

    def __len__(self) -> int:
        return len(self.results)


class BaseExplainer(ABC):
    """
    解释器基础类

    所有解释器共享一个 PredictionAdapter，通过显式传入的随机数生成器保证可复现。
    修改目标特征或实例的方法会整体重算结果，旧结果被替换而不是部分更新。
    """

    explanation_method = 'base'

    def __init__(self,
                 predictor: PredictionAdapter,
                 random_state: RandomStateLike = None,
                 n_jobs: int = 1,
                 verbose: bool = False):
        """
        初始化解释器

        Args:
            predictor: 预测适配器
            random_state: 随机种子或 np.random.Generator
            n_jobs: 并行线程数
            verbose: 是否显示详细信息
        """
        if not isinstance(predictor, PredictionAdapter):
            raise InvalidConfigError("predictor must be a PredictionAdapter (see make_predictor)")
        if isinstance(n_jobs, bool) or not isinstance(n_jobs, int) or n_jobs == 0:
            raise InvalidConfigError(f"n_jobs must be a non-zero integer, got {n_jobs!r}")

        self.predictor = predictor
        self.random_state = random_state
        self.rng = resolve_rng(random_state)
        self.n_jobs = n_jobs
        self.verbose = verbose

        self._result: Optional[ExplanationResult] = None

    @property
    def data(self) -> pd.DataFrame:
        return self.predictor.data

    @property
    def schema(self):
        return self.predictor.schema

    @property
    def feature_names(self) -> List[str]:
        return self.predictor.feature_names

    @property
    def result(self) -> Optional[ExplanationResult]:
        """最近一次计算的结果"""
        return self._result

    @property
    def is_fitted_(self) -> bool:
        return self._result is not None

    def _log(self, message: str) -> None:
        if self.verbose:
            logger.info(message)
        else:
            logger.debug(message)

    def _stack_outputs(self, per_output: List[pd.DataFrame]) -> pd.DataFrame:
        """多输出时为每个输出的结果加上 .class 列并纵向拼接"""
        if self.predictor.n_outputs == 1:
            return per_output[0]
        frames = []
        for name, frame in zip(self.predictor.output_names, per_output):
            frame = frame.copy()
            frame['.class'] = name
            frames.append(frame)
        return pd.concat(frames, ignore_index=True)

    @abstractmethod
    def explain(self, *args, **kwargs) -> ExplanationResult:
        """
        计算解释结果

        Returns:
            解释结果
        """
        pass

    def get_info(self) -> Dict[str, Any]:
        """获取解释器信息"""
        return {
            'explainer_class': self.__class__.__name__,
            'explanation_method': self.explanation_method,
            'predictor': repr(self.predictor),
            'feature_count': len(self.feature_names),
            'feature_names': self.feature_names,
            'outputs': self.predictor.output_names,
            'is_fitted': self.is_fitted_
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(features={len(self.feature_names)}, fitted={self.is_fitted_})"
