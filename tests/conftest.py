"""
Pytest配置文件

全局测试配置和fixtures
"""

import pytest
import numpy as np
import pandas as pd
import warnings
import sys
from pathlib import Path

# 添加项目根目录到路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from blackbox_iml import make_predictor

# 忽略警告
warnings.filterwarnings("ignore", category=DeprecationWarning)
warnings.filterwarnings("ignore", category=FutureWarning)


def pytest_configure(config):
    """Pytest配置"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


def toy_model(x, multi=False):
    """玩具模型：(a + b + 100 * (c == 'a')) / 155，multi 时附加 1 - pred"""
    pred = (x.iloc[:, 0] + x.iloc[:, 1] + 100 * (x.iloc[:, 2] == 'a')) / 155
    dat = pd.DataFrame({'pred': pred.to_numpy(dtype=float)})
    if multi:
        dat['pred2'] = 1 - dat['pred']
    return dat


@pytest.fixture
def toy_data():
    """5行玩具数据：数值特征 a、b，类别特征 c（a/b/c）、d（A/B）"""
    return pd.DataFrame({
        'a': [1, 2, 3, 4, 5],
        'b': [10, 20, 30, 40, 50],
        'c': pd.Categorical(['a', 'b', 'c', 'a', 'b']),
        'd': pd.Categorical(['A', 'A', 'B', 'B', 'B'])
    })


@pytest.fixture
def toy_y(toy_data):
    """真实标签等于模型预测"""
    return toy_model(toy_data)['pred'].to_numpy()


@pytest.fixture
def predictor1(toy_data, toy_y):
    """单输出预测适配器"""
    return make_predictor(toy_model, toy_data, y=toy_y)


@pytest.fixture
def predictor2(toy_data, toy_y):
    """多输出预测适配器"""
    return make_predictor(toy_model, toy_data, y=toy_y, predict_args={'multi': True})


@pytest.fixture
def predictor3(toy_data, toy_y):
    """多输出模型中选择第2个输出"""
    return make_predictor(toy_model, toy_data, y=toy_y, predict_args={'multi': True}, class_=2)


@pytest.fixture
def linear_data():
    """线性模型用的数值数据"""
    rng = np.random.default_rng(42)
    return pd.DataFrame({
        'x1': rng.normal(0, 1, 200),
        'x2': rng.normal(5, 2, 200),
        'x3': rng.uniform(-1, 1, 200)
    })


@pytest.fixture
def linear_predictor(linear_data):
    """黑盒本身是线性模型：1 + 2*x1 - 3*x2 + 0.5*x3"""
    def linear_model(x):
        return 1 + 2 * x['x1'] - 3 * x['x2'] + 0.5 * x['x3']

    return make_predictor(linear_model, linear_data)
