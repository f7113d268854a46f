"""
数据集结构定义

列名与类型（数值型或带固定水平集合的类别型）一经声明，在所有调用中保持不变
"""

import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass
import logging

from ..exceptions import SchemaMismatchError, UnknownFeatureError

logger = logging.getLogger(__name__)

NUMERIC = 'numeric'
CATEGORICAL = 'categorical'


@dataclass(frozen=True)
class FeatureSpec:
    """单个特征的类型声明"""
    name: str
    kind: str = NUMERIC
    levels: Tuple[Any, ...] = ()

    @property
    def is_categorical(self) -> bool:
        return self.kind == CATEGORICAL

    @property
    def is_numeric(self) -> bool:
        return self.kind == NUMERIC


class DatasetSchema:
    """数据集结构：有序的特征声明集合"""

    def __init__(self, features: Sequence[FeatureSpec]):
        self.features: List[FeatureSpec] = list(features)
        self._by_name: Dict[str, FeatureSpec] = {spec.name: spec for spec in self.features}
        if len(self._by_name) != len(self.features):
            raise SchemaMismatchError("Duplicate feature names in schema")

    @classmethod
    def from_frame(cls, data: pd.DataFrame) -> 'DatasetSchema':
        """
        从DataFrame推断数据结构

        Args:
            data: 参考数据集

        Returns:
            数据结构
        """
        specs = []
        for name in data.columns:
            column = data[name]
            if isinstance(column.dtype, pd.CategoricalDtype):
                levels = tuple(column.cat.categories.tolist())
                specs.append(FeatureSpec(str(name), CATEGORICAL, levels))
            elif (pd.api.types.is_bool_dtype(column)
                  or pd.api.types.is_object_dtype(column)
                  or pd.api.types.is_string_dtype(column)):
                levels = tuple(sorted(column.dropna().unique().tolist(), key=str))
                specs.append(FeatureSpec(str(name), CATEGORICAL, levels))
            elif pd.api.types.is_numeric_dtype(column):
                specs.append(FeatureSpec(str(name), NUMERIC))
            else:
                raise SchemaMismatchError(
                    f"Unsupported dtype {column.dtype} for feature '{name}'",
                    details={'feature': name, 'dtype': str(column.dtype)}
                )

        return cls(specs)

    @property
    def feature_names(self) -> List[str]:
        return [spec.name for spec in self.features]

    @property
    def categorical_features(self) -> List[str]:
        return [spec.name for spec in self.features if spec.is_categorical]

    @property
    def numeric_features(self) -> List[str]:
        return [spec.name for spec in self.features if spec.is_numeric]

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self.features)

    def __getitem__(self, name: str) -> FeatureSpec:
        return self.get(name)

    def get(self, name: str) -> FeatureSpec:
        """获取特征声明，不存在时抛出 UnknownFeatureError"""
        if name not in self._by_name:
            raise UnknownFeatureError(
                f"Feature '{name}' not found in dataset schema",
                details={'feature': name, 'available': self.feature_names}
            )
        return self._by_name[name]

    def validate_features(self, names: Union[str, Sequence[str]]) -> List[str]:
        """校验一组特征名并返回列表"""
        if isinstance(names, str):
            names = [names]
        names = list(names)
        for name in names:
            self.get(name)
        return names

    def conform(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        按数据结构转换数据：列顺序、类别水平集合、数值类型

        Args:
            data: 输入数据

        Returns:
            转换后的数据副本（索引重置为0..n-1）
        """
        if not isinstance(data, pd.DataFrame):
            data = pd.DataFrame(data)
        # 列名统一为字符串，与 from_frame 一致
        data = data.rename(columns=str)

        missing = [name for name in self.feature_names if name not in data.columns]
        if missing:
            raise UnknownFeatureError(
                f"Features missing from data: {missing}",
                details={'missing': missing}
            )

        conformed = {}
        for spec in self.features:
            column = data[spec.name]
            if spec.is_categorical:
                values = column.astype(object) if isinstance(column.dtype, pd.CategoricalDtype) else column
                unknown = set(values.dropna().unique().tolist()) - set(spec.levels)
                if unknown:
                    raise SchemaMismatchError(
                        f"Feature '{spec.name}' has values outside its declared levels: {sorted(unknown, key=str)}",
                        details={'feature': spec.name, 'unknown_levels': list(unknown)}
                    )
                conformed[spec.name] = pd.Categorical(values.to_numpy(), categories=list(spec.levels))
            else:
                try:
                    conformed[spec.name] = pd.to_numeric(column).to_numpy(dtype=float)
                except (TypeError, ValueError) as e:
                    raise SchemaMismatchError(
                        f"Feature '{spec.name}' is declared numeric but holds non-numeric values",
                        details={'feature': spec.name}
                    ) from e

        return pd.DataFrame(conformed, columns=self.feature_names)

    def row_to_frame(self, row: Any) -> pd.DataFrame:
        """
        将单个实例（Series、字典或单行DataFrame）转换为一行数据

        Args:
            row: 单个实例

        Returns:
            一行的DataFrame
        """
        if isinstance(row, pd.DataFrame):
            if len(row) != 1:
                raise SchemaMismatchError(f"Expected a single row, got {len(row)} rows")
            frame = row
        elif isinstance(row, pd.Series):
            frame = row.to_frame().T
        elif isinstance(row, dict):
            frame = pd.DataFrame({key: [value] for key, value in row.items()})
        else:
            raise SchemaMismatchError(f"Unsupported instance type: {type(row).__name__}")

        return self.conform(frame)

    def __repr__(self) -> str:
        parts = [f"{spec.name}:{spec.kind}" for spec in self.features]
        return f"DatasetSchema({', '.join(parts)})"
