"""
并行执行与随机数工具

按特征、网格点或采样批次拆分的任务彼此独立，只读共享参考数据与预测适配器。
每个任务预先分配子种子，结果与 n_jobs 无关。
"""

import numpy as np
from typing import Any, Callable, Iterable, List, Optional, Union
from concurrent.futures import ThreadPoolExecutor
import logging
import os

from tqdm import tqdm

logger = logging.getLogger(__name__)

RandomStateLike = Optional[Union[int, np.random.Generator]]


def resolve_rng(random_state: RandomStateLike = None) -> np.random.Generator:
    """
    获取随机数生成器

    Args:
        random_state: None、整数种子或 Generator

    Returns:
        np.random.Generator
    """
    if isinstance(random_state, np.random.Generator):
        return random_state
    if random_state is None or isinstance(random_state, (int, np.integer)):
        return np.random.default_rng(random_state)
    raise TypeError(f"random_state must be None, int or np.random.Generator, got {type(random_state).__name__}")


def spawn_seeds(rng: np.random.Generator, n: int) -> List[int]:
    """从生成器派生 n 个独立子种子"""
    return [int(seed) for seed in rng.integers(0, 2**32 - 1, size=n)]


def _effective_jobs(n_jobs: int) -> int:
    if n_jobs is None or n_jobs == 0:
        return 1
    if n_jobs < 0:
        return max(1, (os.cpu_count() or 1) + 1 + n_jobs)
    return n_jobs


def parallel_map(func: Callable[[Any], Any],
                 items: Iterable[Any],
                 n_jobs: int = 1,
                 desc: Optional[str] = None,
                 verbose: bool = False) -> List[Any]:
    """
    对每个元素执行 func，结果按输入顺序返回

    Args:
        func: 任务函数
        items: 任务参数
        n_jobs: 并行线程数（1为串行，-1为全部CPU）
        desc: 进度条描述
        verbose: 是否显示进度条

    Returns:
        结果列表
    """
    items = list(items)
    workers = min(_effective_jobs(n_jobs), max(1, len(items)))

    if workers == 1:
        return [func(item) for item in tqdm(items, disable=not verbose, desc=desc)]

    logger.debug(f"Running {len(items)} tasks on {workers} threads")

    results: List[Any] = [None] * len(items)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(func, item) for item in items]
        for i, future in enumerate(tqdm(futures, disable=not verbose, desc=desc)):
            # 任务异常在此处原样抛出
            results[i] = future.result()

    return results
