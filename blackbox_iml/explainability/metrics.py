"""
特征重要性使用的损失函数
"""

import numpy as np
from typing import Callable, Dict, Tuple, Union
from sklearn.metrics import (
    mean_absolute_error, mean_squared_error, median_absolute_error,
    mean_absolute_percentage_error, mean_squared_log_error, log_loss
)

from ..exceptions import InvalidConfigError

LossFunction = Callable[[np.ndarray, np.ndarray], float]


def _rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def _classification_error(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(np.mean(np.asarray(y_true) != np.asarray(y_pred)))


def _logloss(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    # y_true 为 0/1 标签，y_pred 为正类概率
    y_pred = np.clip(np.asarray(y_pred, dtype=float), 1e-15, 1 - 1e-15)
    return float(log_loss(y_true, y_pred, labels=[0, 1]))


def _relative_error(y_true: np.ndarray, y_pred: np.ndarray, power: int) -> float:
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    denominator = np.sum(np.abs(y_true - y_true.mean()) ** power)
    if denominator == 0:
        raise InvalidConfigError("Relative loss is undefined for a constant target")
    return float(np.sum(np.abs(y_true - y_pred) ** power) / denominator)


def _rae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return _relative_error(y_true, y_pred, 1)


def _rse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return _relative_error(y_true, y_pred, 2)


def _smape(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    denominator = np.abs(y_true) + np.abs(y_pred)
    terms = np.zeros_like(denominator)
    nonzero = denominator > 0
    terms[nonzero] = 2 * np.abs(y_true - y_pred)[nonzero] / denominator[nonzero]
    return float(np.mean(terms))


LOSSES: Dict[str, LossFunction] = {
    'mae': mean_absolute_error,
    'mse': mean_squared_error,
    'rmse': _rmse,
    'mdae': median_absolute_error,
    'mape': mean_absolute_percentage_error,
    'msle': mean_squared_log_error,
    'ce': _classification_error,
    'logloss': _logloss,
    'rae': _rae,
    'rse': _rse,
    'smape': _smape
}


def get_loss(loss: Union[str, LossFunction]) -> Tuple[str, LossFunction]:
    """
    解析损失函数

    Args:
        loss: 损失函数名或 loss(y_true, y_pred) 可调用对象

    Returns:
        (名称, 函数)
    """
    if callable(loss):
        return getattr(loss, '__name__', 'custom'), loss
    if loss not in LOSSES:
        raise InvalidConfigError(
            f"Unknown loss: {loss}",
            details={'supported': sorted(LOSSES)}
        )
    return loss, LOSSES[loss]
