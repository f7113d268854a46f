"""
全局代理树单元测试
"""

import pytest
import numpy as np
import pandas as pd

from blackbox_iml import (
    InvalidConfigError,
    TreeSurrogateExplainer,
    make_predictor
)
from blackbox_iml.utils.config import TreeSurrogateConfig


class TestTreeSurrogateExplainer:
    """测试代理树解释器"""

    def test_regression(self, predictor1):
        """测试回归代理树"""
        explainer = TreeSurrogateExplainer(predictor1, max_depth=2, random_state=0)
        result = explainer.result

        assert result.task == 'regression'
        assert result.r_squared['pred'] > 0.8
        assert result.n_leaves <= 4
        assert list(result.results.columns) == ['.node', '.path', '.y_hat_pred', '.y_hat_tree_pred']
        assert len(result.results) == 5

    def test_first_split_on_categorical(self, predictor1):
        """测试首个分裂为 c == 'a' 的指示列"""
        result = TreeSurrogateExplainer(predictor1, max_depth=1, random_state=0).result

        assert result.n_leaves == 2
        assert 'c_a' in result.rules
        paths = result.results['.path']
        assert paths.iloc[0] == paths.iloc[3]
        assert paths.iloc[0] != paths.iloc[1]

    def test_predict(self, predictor1, toy_data):
        """测试代理树预测"""
        explainer = TreeSurrogateExplainer(predictor1, max_depth=3, random_state=0)
        predictions = explainer.predict(toy_data)

        assert list(predictions.columns) == ['pred']
        np.testing.assert_allclose(
            predictions['pred'], explainer.result.results['.y_hat_tree_pred']
        )

    def test_multi_output_regression(self, predictor2):
        """测试多输出回归"""
        result = TreeSurrogateExplainer(predictor2, random_state=0).result

        assert set(result.r_squared) == {'pred', 'pred2'}
        assert '.y_hat_tree_pred2' in result.results.columns

    def test_classification(self, predictor2, toy_data):
        """测试对最大输出列分类"""
        explainer = TreeSurrogateExplainer(predictor2, task='classification', random_state=0)
        result = explainer.result

        assert result.results['.target'].tolist() == ['pred', 'pred2', 'pred2', 'pred', 'pred2']
        assert result.results['.target_tree'].tolist() == result.results['.target'].tolist()
        assert '.class' not in result.results.columns
        assert result.r_squared['accuracy'] == 1.0
        assert explainer.predict(toy_data)['class'].tolist() == result.results['.target'].tolist()

    def test_classification_needs_two_outputs(self, predictor1):
        """测试单输出不能做分类代理"""
        with pytest.raises(InvalidConfigError):
            TreeSurrogateExplainer(predictor1, task='classification')

    def test_numeric_only(self, linear_predictor):
        """测试纯数值数据"""
        result = TreeSurrogateExplainer(linear_predictor, max_depth=4, random_state=0).result

        assert result.r_squared['pred'] > 0.5
        assert result.metadata['encoded_features'] == ['x1', 'x2', 'x3']

    def test_deterministic(self, predictor1):
        """测试相同随机种子结果一致"""
        first = TreeSurrogateExplainer(predictor1, random_state=5).result
        second = TreeSurrogateExplainer(predictor1, random_state=5).result

        pd.testing.assert_frame_equal(first.results, second.results)

    def test_invalid_parameters(self, predictor1):
        """测试无效参数"""
        with pytest.raises(InvalidConfigError):
            TreeSurrogateExplainer(predictor1, max_depth=0)
        with pytest.raises(InvalidConfigError):
            TreeSurrogateExplainer(predictor1, task='clustering')

    def test_from_config(self, predictor1):
        """测试从配置创建"""
        result = TreeSurrogateExplainer.from_config(predictor1, TreeSurrogateConfig(max_depth=1)).result

        assert result.max_depth == 1
        assert result.n_leaves == 2
