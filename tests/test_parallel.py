"""
并行执行与随机数工具单元测试
"""

import time

import pytest
import numpy as np

from blackbox_iml.utils.parallel import parallel_map, resolve_rng, spawn_seeds


class TestParallelMap:
    """测试并行映射"""

    def test_preserves_order(self):
        """测试结果按输入顺序返回"""
        def slow_square(x):
            time.sleep(0.01 * (5 - x))
            return x * x

        assert parallel_map(slow_square, range(5), n_jobs=4) == [0, 1, 4, 9, 16]

    def test_serial(self):
        """测试串行执行"""
        assert parallel_map(str, [1, 2], n_jobs=1) == ['1', '2']

    def test_all_cpus(self):
        """测试 n_jobs=-1"""
        assert parallel_map(abs, [-1, -2, -3], n_jobs=-1) == [1, 2, 3]

    def test_empty(self):
        """测试空任务列表"""
        assert parallel_map(abs, [], n_jobs=2) == []

    def test_exception_propagates(self):
        """测试任务异常原样抛出"""
        def fail(x):
            if x == 2:
                raise RuntimeError("task failed")
            return x

        with pytest.raises(RuntimeError, match="task failed"):
            parallel_map(fail, range(4), n_jobs=2)


class TestRandomState:
    """测试随机数工具"""

    def test_resolve_rng(self):
        """测试随机数生成器解析"""
        rng = np.random.default_rng(0)

        assert resolve_rng(rng) is rng
        assert resolve_rng(5).integers(100) == np.random.default_rng(5).integers(100)
        assert isinstance(resolve_rng(None), np.random.Generator)

    def test_resolve_rng_invalid(self):
        """测试无效的随机状态"""
        with pytest.raises(TypeError):
            resolve_rng('seed')

    def test_spawn_seeds(self):
        """测试派生种子可复现"""
        first = spawn_seeds(np.random.default_rng(1), 4)
        second = spawn_seeds(np.random.default_rng(1), 4)

        assert first == second
        assert len(set(first)) == 4
