"""
端到端集成测试

在同一个预测适配器上依次运行全部解释引擎
"""

import pytest
import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestRegressor

from blackbox_iml import (
    FeatureImportanceExplainer,
    LocalSurrogateExplainer,
    PartialDependenceExplainer,
    ShapleyExplainer,
    TreeSurrogateExplainer,
    make_predictor
)
from blackbox_iml.utils.config import ConfigManager
from tests.conftest import toy_model
from tests.integration import INTEGRATION_CONFIG


@pytest.mark.integration
class TestEndToEndWorkflow:
    """测试端到端工作流程"""

    def test_toy_workflow(self, toy_data, toy_y):
        """测试玩具数据上的完整流程"""
        predictor = make_predictor(toy_model, toy_data, y=toy_y)

        importance = FeatureImportanceExplainer(
            predictor, loss='mae', compare='difference', method='cartesian'
        ).explain()
        assert importance.importance('c') > importance.importance('a')
        assert importance.importance('c') > importance.importance('b')

        pdp = PartialDependenceExplainer(predictor, feature='a').result
        assert np.all(np.diff(pdp.pdp[:, 0]) >= 0)

        shapley = ShapleyExplainer(predictor, x_interest=toy_data.iloc[0]).result
        assert shapley.contributions()['c'] > 0

        local = LocalSurrogateExplainer(
            predictor, x_interest=toy_data.iloc[0], random_state=INTEGRATION_CONFIG['random_seed']
        ).result
        assert local.coefficients()['c'] > 0

        tree = TreeSurrogateExplainer(predictor, random_state=INTEGRATION_CONFIG['random_seed']).result
        assert tree.r_squared['pred'] > 0.8

    def test_shuffle_importance_ranking(self, toy_data, toy_y):
        """测试随机打乱多次后 c 的重要性最高"""
        predictor = make_predictor(toy_model, toy_data, y=toy_y)

        result = FeatureImportanceExplainer(
            predictor, compare='difference', n_repetitions=50,
            random_state=INTEGRATION_CONFIG['random_seed']
        ).explain()

        assert result.ranking()[0] == 'c'
        assert result.importance('d') == pytest.approx(0.0)

    @pytest.mark.slow
    def test_sklearn_workflow(self):
        """测试scikit-learn模型的完整流程"""
        rng = np.random.default_rng(INTEGRATION_CONFIG['random_seed'])
        n = 300
        data = pd.DataFrame({
            'x1': rng.normal(size=n),
            'x2': rng.normal(size=n),
            'noise': rng.normal(size=n)
        })
        y = 3 * data['x1'] + np.sin(data['x2']) + rng.normal(0, 0.1, n)
        model = RandomForestRegressor(n_estimators=30, random_state=0).fit(data, y)

        config = ConfigManager().config
        predictor = make_predictor(model, data, y=y.to_numpy(), family='sklearn_regressor')

        importance = FeatureImportanceExplainer.from_config(
            predictor, config.feature_importance, random_state=config.random_state, n_jobs=2
        ).explain()
        assert importance.ranking()[0] == 'x1'
        assert importance.ranking()[-1] == 'noise'

        pdp = PartialDependenceExplainer.from_config(
            predictor, config.partial_dependence, feature='x1'
        ).result
        assert pdp.pdp[-1, 0] > pdp.pdp[0, 0]

        shapley = ShapleyExplainer.from_config(
            predictor, config.shapley, x_interest=data.iloc[0], random_state=config.random_state
        ).result
        assert shapley.method == 'exact'
        assert shapley.efficiency_gap['pred'] < 1e-6

        local = LocalSurrogateExplainer.from_config(
            predictor, config.local_surrogate, x_interest=data.iloc[0], random_state=config.random_state
        ).result
        assert set(local.results['feature']) == {'x1', 'x2', 'noise'}

        tree = TreeSurrogateExplainer.from_config(
            predictor, config.tree_surrogate, random_state=config.random_state
        ).result
        assert 'x1' in tree.rules
