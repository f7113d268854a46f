"""
解释器共用的工具函数：网格、邻域采样、距离与核权重
"""

import numpy as np
import pandas as pd
from typing import Any, List, Sequence
from scipy.spatial.distance import cdist

from ..data.schema import DatasetSchema, FeatureSpec
from ..exceptions import InvalidConfigError


def format_feature_value(name: str, value: Any) -> str:
    """格式化为 'feature=value'"""
    if isinstance(value, (float, np.floating)):
        return f"{name}={float(value):g}"
    return f"{name}={value}"


def feature_grid(column: pd.Series, spec: FeatureSpec, grid_size: int, grid_type: str = 'equidistant') -> List[Any]:
    """
    构建特征网格

    数值特征：在观测范围内等距或按分位数取点（去重后升序）；
    类别特征：数据中出现过的水平（按声明顺序）

    Args:
        column: 特征列
        spec: 特征声明
        grid_size: 网格点数
        grid_type: 'equidistant' 或 'quantile'

    Returns:
        网格值列表
    """
    if spec.is_categorical:
        observed = set(column.dropna().astype(object).tolist())
        return [level for level in spec.levels if level in observed]

    values = column.dropna().to_numpy(dtype=float)
    if len(values) == 0:
        raise InvalidConfigError(f"Feature '{spec.name}' has no observed values")

    if grid_type == 'quantile':
        grid = np.quantile(values, np.linspace(0, 1, grid_size))
    else:
        grid = np.linspace(values.min(), values.max(), grid_size)

    return np.unique(grid).tolist()


def nearest_grid_index(grid: Sequence[Any], anchor: Any, spec: FeatureSpec) -> int:
    """网格中离 anchor 最近的点的位置；类别特征要求精确匹配"""
    if spec.is_categorical:
        if anchor not in grid:
            raise InvalidConfigError(
                f"Anchor {anchor!r} is not a level of '{spec.name}' in the grid",
                details={'grid': list(grid)}
            )
        return list(grid).index(anchor)

    try:
        anchor = float(anchor)
    except (TypeError, ValueError) as e:
        raise InvalidConfigError(f"Anchor for numeric feature '{spec.name}' must be numeric") from e

    return int(np.argmin(np.abs(np.asarray(grid, dtype=float) - anchor)))


def numeric_scale(data: pd.DataFrame, schema: DatasetSchema) -> pd.Series:
    """数值特征的标准差（为0时取1）"""
    scale = {}
    for name in schema.numeric_features:
        sd = float(np.std(data[name].to_numpy(dtype=float), ddof=1)) if len(data) > 1 else 0.0
        scale[name] = sd if sd > 0 and np.isfinite(sd) else 1.0
    return pd.Series(scale, dtype=float)


def sample_neighbourhood(x_interest: pd.DataFrame,
                         data: pd.DataFrame,
                         schema: DatasetSchema,
                         n_samples: int,
                         rng: np.random.Generator) -> pd.DataFrame:
    """
    在目标实例周围采样邻域

    数值特征 ~ Normal(x0_j, sd_j)，sd_j 为参考数据的标准差（常数特征不扰动）；
    类别特征按参考数据中的水平频率抽取。第一行为目标实例本身。

    Args:
        x_interest: 目标实例（一行）
        data: 参考数据
        schema: 数据结构
        n_samples: 样本数（含目标实例）
        rng: 随机数生成器

    Returns:
        采样数据
    """
    n_draws = n_samples - 1
    columns = {}
    for spec in schema.features:
        x0 = x_interest[spec.name].iloc[0]
        if spec.is_categorical:
            counts = data[spec.name].value_counts()
            counts = counts[counts > 0]
            levels = counts.index.tolist()
            probs = (counts / counts.sum()).to_numpy(dtype=float)
            draws = rng.choice(len(levels), size=n_draws, p=probs)
            values = [x0] + [levels[i] for i in draws]
            columns[spec.name] = np.array(values, dtype=object)
        else:
            column = data[spec.name].to_numpy(dtype=float)
            sd = float(np.std(column, ddof=1)) if len(column) > 1 else 0.0
            if not np.isfinite(sd):
                sd = 0.0
            draws = rng.normal(loc=float(x0), scale=sd, size=n_draws)
            columns[spec.name] = np.concatenate([[float(x0)], draws])

    return schema.conform(pd.DataFrame(columns, columns=schema.feature_names))


def encode_for_distance(frame: pd.DataFrame,
                        x_interest: pd.DataFrame,
                        schema: DatasetSchema,
                        scale: pd.Series) -> np.ndarray:
    """数值特征按 scale 缩放，类别特征编码为与目标实例不同(1)/相同(0)"""
    encoded = np.empty((len(frame), len(schema)), dtype=float)
    for j, spec in enumerate(schema.features):
        if spec.is_categorical:
            x0 = x_interest[spec.name].iloc[0]
            encoded[:, j] = (frame[spec.name].astype(object).to_numpy() != x0).astype(float)
        else:
            encoded[:, j] = frame[spec.name].to_numpy(dtype=float) / scale[spec.name]
    return encoded


def instance_distances(samples: pd.DataFrame,
                       x_interest: pd.DataFrame,
                       data: pd.DataFrame,
                       schema: DatasetSchema,
                       metric: str = 'euclidean') -> np.ndarray:
    """
    样本到目标实例的距离

    Args:
        samples: 邻域样本
        x_interest: 目标实例
        data: 参考数据（用于确定缩放）
        schema: 数据结构
        metric: 'euclidean'（标准差缩放）或 'gower'（极差缩放的平均绝对差）

    Returns:
        距离数组
    """
    if metric == 'gower':
        ranges = {}
        for name in schema.numeric_features:
            column = data[name].to_numpy(dtype=float)
            spread = float(column.max() - column.min())
            ranges[name] = spread if spread > 0 else 1.0
        scale = pd.Series(ranges, dtype=float)
        sample_enc = encode_for_distance(samples, x_interest, schema, scale)
        x_enc = encode_for_distance(x_interest, x_interest, schema, scale)
        return cdist(x_enc, sample_enc, metric='cityblock')[0] / len(schema)

    scale = numeric_scale(data, schema)
    sample_enc = encode_for_distance(samples, x_interest, schema, scale)
    x_enc = encode_for_distance(x_interest, x_interest, schema, scale)
    return cdist(x_enc, sample_enc, metric='euclidean')[0]


def exponential_kernel(distances: np.ndarray, kernel_width: float) -> np.ndarray:
    """指数核：sqrt(exp(-d^2 / width^2))"""
    return np.sqrt(np.exp(-(np.asarray(distances, dtype=float) ** 2) / kernel_width ** 2))


def recode_features(frame: pd.DataFrame, x_interest: pd.DataFrame, schema: DatasetSchema) -> np.ndarray:
    """
    局部线性模型的设计矩阵：数值特征保留原值，
    类别特征编码为 1(与目标实例水平相同)/0
    """
    design = np.empty((len(frame), len(schema)), dtype=float)
    for j, spec in enumerate(schema.features):
        if spec.is_categorical:
            x0 = x_interest[spec.name].iloc[0]
            design[:, j] = (frame[spec.name].astype(object).to_numpy() == x0).astype(float)
        else:
            design[:, j] = frame[spec.name].to_numpy(dtype=float)
    return design


def to_object_matrix(frame: pd.DataFrame) -> np.ndarray:
    """转换为 object 数组，便于混合类型的逐格替换"""
    return frame.astype(object).to_numpy()
