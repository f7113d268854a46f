"""
预测适配器

每种模型族对应一个适配器，在构造时显式选择；PredictionAdapter 负责
参考数据、真实标签、输出列选择以及输出形状校验
"""

import numpy as np
import pandas as pd
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from abc import ABC, abstractmethod
import logging

from ..data.schema import DatasetSchema
from ..exceptions import (
    AdapterShapeError,
    InvalidConfigError,
    UnknownFeatureError
)

logger = logging.getLogger(__name__)


def _output_names(n_columns: int) -> List[str]:
    """未命名输出的列名：pred, pred2, pred3, ..."""
    return ['pred'] + [f'pred{i}' for i in range(2, n_columns + 1)]


def normalize_output(raw: Any) -> pd.DataFrame:
    """
    将模型原始输出统一为DataFrame

    Args:
        raw: DataFrame、Series、数组或列表

    Returns:
        每个输出一列的DataFrame
    """
    if isinstance(raw, pd.DataFrame):
        output = raw.reset_index(drop=True).copy()
        output.columns = [str(col) for col in output.columns]
    elif isinstance(raw, pd.Series):
        name = raw.name if raw.name is not None else 'pred'
        output = pd.DataFrame({str(name): raw.to_numpy()})
    else:
        values = np.asarray(raw)
        if values.ndim == 0:
            raise AdapterShapeError("Model returned a scalar instead of one prediction per row")
        if values.ndim == 1:
            values = values.reshape(-1, 1)
        if values.ndim != 2:
            raise AdapterShapeError(
                f"Model output must be 1- or 2-dimensional, got {values.ndim} dimensions"
            )
        output = pd.DataFrame(values, columns=_output_names(values.shape[1]))

    try:
        output = output.apply(pd.to_numeric)
    except (TypeError, ValueError) as e:
        raise AdapterShapeError("Model output contains non-numeric predictions") from e

    return output.astype(float)


class ModelAdapter(ABC):
    """模型适配器基础类"""

    def __init__(self, model: Any, predict_args: Optional[Dict[str, Any]] = None):
        self.model = model
        self.predict_args = dict(predict_args or {})

    @abstractmethod
    def _raw_predict(self, data: pd.DataFrame) -> Any:
        """调用底层模型"""
        pass

    def __call__(self, data: pd.DataFrame) -> pd.DataFrame:
        return normalize_output(self._raw_predict(data))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r})"


class FunctionModelAdapter(ModelAdapter):
    """预测函数适配器：func(data, **predict_args)"""

    def __init__(self, func: Callable[..., Any], predict_args: Optional[Dict[str, Any]] = None):
        if not callable(func):
            raise InvalidConfigError("FunctionModelAdapter requires a callable")
        super().__init__(func, predict_args)

    def _raw_predict(self, data: pd.DataFrame) -> Any:
        return self.model(data, **self.predict_args)


class SklearnRegressorAdapter(ModelAdapter):
    """scikit-learn 回归器适配器（predict）"""

    def __init__(self, model: Any, predict_args: Optional[Dict[str, Any]] = None):
        if not hasattr(model, 'predict'):
            raise InvalidConfigError("Model must have a predict method")
        super().__init__(model, predict_args)

    def _raw_predict(self, data: pd.DataFrame) -> Any:
        return self.model.predict(data, **self.predict_args)


class SklearnClassifierAdapter(ModelAdapter):
    """scikit-learn 分类器适配器（predict_proba，每个类别一列）"""

    def __init__(self, model: Any, predict_args: Optional[Dict[str, Any]] = None):
        if not hasattr(model, 'predict_proba'):
            raise InvalidConfigError("Model must have a predict_proba method")
        super().__init__(model, predict_args)

    def _raw_predict(self, data: pd.DataFrame) -> Any:
        proba = np.asarray(self.model.predict_proba(data, **self.predict_args))
        classes = getattr(self.model, 'classes_', None)
        if classes is None or len(classes) != proba.shape[1]:
            return proba
        return pd.DataFrame(proba, columns=[str(c) for c in classes])


MODEL_FAMILIES = {
    'function': FunctionModelAdapter,
    'sklearn_regressor': SklearnRegressorAdapter,
    'sklearn_classifier': SklearnClassifierAdapter
}


class PredictionAdapter:
    """
    统一预测接口

    持有模型适配器、参考数据集和可选的真实标签。构造时对参考数据做一次
    探测调用，记录输出列；之后每次 predict 都校验行数与列数。不做缓存。
    """

    def __init__(self,
                 model_adapter: ModelAdapter,
                 data: pd.DataFrame,
                 y: Optional[Union[str, Sequence[Any], np.ndarray]] = None,
                 class_: Optional[Union[int, str]] = None):
        """
        初始化预测适配器

        Args:
            model_adapter: 模型适配器
            data: 参考数据集
            y: 真实标签，或 data 中标签列的列名
            class_: 选择的输出列（列名或从1开始的位置）
        """
        if not isinstance(model_adapter, ModelAdapter):
            raise InvalidConfigError("model_adapter must be a ModelAdapter instance")

        data = pd.DataFrame(data).reset_index(drop=True)
        if len(data) == 0:
            raise InvalidConfigError("Reference dataset must contain at least one row")

        y_values = None
        if isinstance(y, str):
            if y not in data.columns:
                raise UnknownFeatureError(
                    f"Target column '{y}' not found in data",
                    details={'feature': y}
                )
            y_values = data[y].to_numpy()
            data = data.drop(columns=[y])
        elif y is not None:
            y_values = np.asarray(y)
            if y_values.ndim != 1 or len(y_values) != len(data):
                raise InvalidConfigError(
                    f"y must be one-dimensional with {len(data)} values",
                    details={'y_shape': y_values.shape}
                )

        self.model_adapter = model_adapter
        self.schema = DatasetSchema.from_frame(data)
        self.data = self.schema.conform(data)
        self.y = y_values

        # 探测调用
        probe = self._call_model(self.data)
        self.model_output_names: List[str] = list(probe.columns)
        self.class_ = class_
        self._class_column = self._resolve_class(class_)

        logger.debug(
            f"PredictionAdapter ready: {len(self.data)} rows, "
            f"{len(self.feature_names)} features, outputs={self.output_names}"
        )

    def _call_model(self, data: pd.DataFrame) -> pd.DataFrame:
        output = self.model_adapter(data)
        if len(output) != len(data):
            raise AdapterShapeError(
                f"Model returned {len(output)} rows for {len(data)} input rows",
                details={'n_input': len(data), 'n_output': len(output)}
            )
        return output

    def _resolve_class(self, class_: Optional[Union[int, str]]) -> Optional[str]:
        if class_ is None:
            return None
        if isinstance(class_, (int, np.integer)) and not isinstance(class_, bool):
            if not 1 <= class_ <= len(self.model_output_names):
                raise InvalidConfigError(
                    f"class_ position {class_} out of range for {len(self.model_output_names)} outputs"
                )
            return self.model_output_names[class_ - 1]
        if str(class_) not in self.model_output_names:
            raise InvalidConfigError(
                f"class_ '{class_}' not among model outputs {self.model_output_names}"
            )
        return str(class_)

    @property
    def feature_names(self) -> List[str]:
        return self.schema.feature_names

    @property
    def output_names(self) -> List[str]:
        if self._class_column is not None:
            return [self._class_column]
        return list(self.model_output_names)

    @property
    def n_outputs(self) -> int:
        return len(self.output_names)

    def predict(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        预测

        Args:
            data: 特征数据（按参考数据结构转换）

        Returns:
            每个输出一列、每个输入一行的DataFrame
        """
        data = self.schema.conform(data)
        output = self._call_model(data)

        if len(output.columns) != len(self.model_output_names):
            raise AdapterShapeError(
                f"Model returned {len(output.columns)} output columns, "
                f"expected {len(self.model_output_names)}",
                details={'expected': self.model_output_names, 'got': list(output.columns)}
            )
        output.columns = self.model_output_names

        if self._class_column is not None:
            output = output[[self._class_column]]

        return output

    def predict_values(self, data: pd.DataFrame) -> np.ndarray:
        """预测并返回 (n_rows, n_outputs) 数组"""
        return self.predict(data).to_numpy(dtype=float)

    def predict_row(self, row: Any) -> np.ndarray:
        """预测单个实例，返回长度为 n_outputs 的数组"""
        return self.predict_values(self.schema.row_to_frame(row))[0]

    def __repr__(self) -> str:
        return (f"PredictionAdapter(adapter={self.model_adapter.__class__.__name__}, "
                f"n_rows={len(self.data)}, outputs={self.output_names})")


def make_predictor(model: Any,
                   data: pd.DataFrame,
                   y: Optional[Union[str, Sequence[Any], np.ndarray]] = None,
                   family: str = 'function',
                   predict_args: Optional[Dict[str, Any]] = None,
                   class_: Optional[Union[int, str]] = None) -> PredictionAdapter:
    """
    创建预测适配器

    Args:
        model: 模型或预测函数
        data: 参考数据集
        y: 真实标签或标签列名
        family: 模型族 ('function', 'sklearn_regressor', 'sklearn_classifier')
        predict_args: 预测时固定传入的额外参数
        class_: 选择的输出列

    Returns:
        PredictionAdapter
    """
    if family not in MODEL_FAMILIES:
        raise InvalidConfigError(
            f"Unknown model family: {family}",
            details={'supported': list(MODEL_FAMILIES)}
        )

    model_adapter = MODEL_FAMILIES[family](model, predict_args=predict_args)
    return PredictionAdapter(model_adapter, data, y=y, class_=class_)
