"""
特征重要性单元测试
"""

import logging

import pytest
import numpy as np
import pandas as pd
from sklearn.linear_model import LogisticRegression

from blackbox_iml import (
    FeatureImportanceExplainer,
    InvalidConfigError,
    MissingGroundTruthError,
    UnknownFeatureError,
    make_predictor
)
from blackbox_iml.explainability.metrics import get_loss
from blackbox_iml.utils.config import FeatureImportanceConfig
from tests.conftest import toy_model


class TestFeatureImportanceExplainer:
    """测试特征重要性解释器"""

    def test_cartesian_difference_values(self, predictor1):
        """测试全部行对组合下的差值重要性"""
        explainer = FeatureImportanceExplainer(predictor1, loss='mae', compare='difference', method='cartesian')
        result = explainer.explain()

        assert result.importance('c') == pytest.approx(100 / 155 * 12 / 20)
        assert result.importance('b') == pytest.approx(20 / 155)
        assert result.importance('a') == pytest.approx(2 / 155)
        assert result.importance('d') == pytest.approx(0.0)
        assert result.ranking() == ['c', 'b', 'a', 'd']
        assert result.n_repetitions == 1

    def test_ratio_with_zero_baseline(self, predictor1, caplog):
        """测试原始损失为0时比值为无穷大"""
        explainer = FeatureImportanceExplainer(predictor1, compare='ratio', method='cartesian')

        with caplog.at_level(logging.WARNING):
            result = explainer.explain()

        assert result.original_error == 0
        assert result.infinite_ratio == {'a', 'b', 'c'}
        assert np.isinf(result.importance('c'))
        assert result.importance('d') == 1.0
        assert result.ranking() == ['c', 'b', 'a', 'd']
        assert 'infinite' in caplog.text

    def test_result_columns(self, predictor1):
        """测试结果表格列"""
        result = FeatureImportanceExplainer(predictor1, n_repetitions=3, random_state=1).explain()

        assert list(result.results.columns) == [
            'feature', 'original_error', 'permutation_error',
            'importance', 'importance_05', 'importance_95', 'importance_std'
        ]
        assert len(result) == 4
        assert len(result.repetitions) == 4 * 3
        assert result.explanation_method == 'feature_importance'

    def test_sorted_descending(self, linear_data):
        """测试按重要性降序排列"""
        y = 1 + 2 * linear_data['x1'] - 3 * linear_data['x2'] + 0.5 * linear_data['x3']
        y = y + np.random.default_rng(0).normal(0, 0.1, len(y))
        predictor = make_predictor(
            lambda x: 1 + 2 * x['x1'] - 3 * x['x2'] + 0.5 * x['x3'], linear_data, y=y.to_numpy()
        )

        result = FeatureImportanceExplainer(predictor, n_repetitions=5, random_state=42).explain()

        importance = result.results['importance'].to_numpy()
        assert np.all(np.diff(importance) <= 0)
        assert result.ranking() == ['x2', 'x1', 'x3']
        assert result.importance('x2') > 1

    def test_reproducible(self, predictor1):
        """测试相同随机种子结果一致"""
        first = FeatureImportanceExplainer(predictor1, compare='difference', random_state=7).explain()
        second = FeatureImportanceExplainer(predictor1, compare='difference', random_state=7).explain()

        pd.testing.assert_frame_equal(first.results, second.results)

    def test_independent_of_n_jobs(self, predictor1):
        """测试结果与并行度无关"""
        serial = FeatureImportanceExplainer(predictor1, compare='difference', random_state=3, n_jobs=1).explain()
        threaded = FeatureImportanceExplainer(predictor1, compare='difference', random_state=3, n_jobs=2).explain()

        pd.testing.assert_frame_equal(serial.results, threaded.results)
        pd.testing.assert_frame_equal(serial.repetitions, threaded.repetitions)

    def test_feature_subset(self, predictor1):
        """测试只评估部分特征"""
        result = FeatureImportanceExplainer(predictor1, method='cartesian').explain(features=['a', 'c'])

        assert sorted(result.ranking()) == ['a', 'c']

    def test_unknown_feature(self, predictor1):
        """测试未知特征"""
        explainer = FeatureImportanceExplainer(predictor1)

        with pytest.raises(UnknownFeatureError):
            explainer.explain(features=['z'])

    def test_missing_ground_truth(self, toy_data):
        """测试缺少真实标签"""
        predictor = make_predictor(toy_model, toy_data)
        explainer = FeatureImportanceExplainer(predictor)

        with pytest.raises(MissingGroundTruthError):
            explainer.explain()

    def test_explicit_y(self, toy_data, toy_y):
        """测试调用时传入真实标签"""
        predictor = make_predictor(toy_model, toy_data)
        result = FeatureImportanceExplainer(predictor, compare='difference', method='cartesian').explain(y=toy_y)

        assert result.ranking()[0] == 'c'

    def test_multi_output_rejected(self, predictor2):
        """测试多输出需要先选择输出列"""
        with pytest.raises(InvalidConfigError):
            FeatureImportanceExplainer(predictor2)

    def test_selected_output(self, predictor3, toy_y):
        """测试选择输出列后可计算"""
        result = FeatureImportanceExplainer(predictor3, compare='difference', method='cartesian').explain(y=1 - toy_y)

        assert result.importance('c') == pytest.approx(100 / 155 * 12 / 20)

    def test_custom_loss(self, predictor1):
        """测试自定义损失函数"""
        def max_error(y_true, y_pred):
            return float(np.max(np.abs(np.asarray(y_true) - np.asarray(y_pred))))

        result = FeatureImportanceExplainer(
            predictor1, loss=max_error, compare='difference', method='cartesian'
        ).explain()

        assert result.loss == 'max_error'
        assert result.importance('c') == pytest.approx(100 / 155)

    def test_invalid_parameters(self, predictor1):
        """测试无效参数"""
        with pytest.raises(InvalidConfigError):
            FeatureImportanceExplainer(predictor1, loss='hinge')
        with pytest.raises(InvalidConfigError):
            FeatureImportanceExplainer(predictor1, compare='percent')
        with pytest.raises(InvalidConfigError):
            FeatureImportanceExplainer(predictor1, n_repetitions=0)
        with pytest.raises(InvalidConfigError):
            FeatureImportanceExplainer(predictor1, n_jobs=0)

    def test_from_config(self, predictor1):
        """测试从配置创建"""
        config = FeatureImportanceConfig(loss='mse', compare='difference', method='cartesian')
        explainer = FeatureImportanceExplainer.from_config(predictor1, config)

        assert explainer.loss_name == 'mse'
        assert explainer.explain().method == 'cartesian'


class TestLosses:
    """测试损失函数"""

    def test_named_losses(self):
        """测试内置损失函数"""
        y_true = np.array([1.0, 2.0, 3.0])
        y_pred = np.array([1.0, 2.0, 5.0])

        assert get_loss('mae')[1](y_true, y_pred) == pytest.approx(2 / 3)
        assert get_loss('mse')[1](y_true, y_pred) == pytest.approx(4 / 3)
        assert get_loss('rmse')[1](y_true, y_pred) == pytest.approx(np.sqrt(4 / 3))
        assert get_loss('rae')[1](y_true, y_pred) == pytest.approx(2 / 2)

    def test_classification_error(self):
        """测试分类错误率"""
        name, loss = get_loss('ce')

        assert name == 'ce'
        assert loss(np.array(['x', 'y', 'y']), np.array(['x', 'x', 'y'])) == pytest.approx(1 / 3)

    def test_relative_loss_constant_target(self):
        """测试常数标签下相对损失无定义"""
        with pytest.raises(InvalidConfigError):
            get_loss('rse')[1](np.ones(4), np.zeros(4))


class TestIgnoredFeature:
    """测试模型不使用的特征"""

    @pytest.mark.parametrize('loss', ['mae', 'mse', 'rmse', 'mdae', 'rae', 'rse', 'smape'])
    def test_zero_importance(self, linear_data, loss):
        """测试打乱被忽略的特征时重要性为0"""
        y = 1 + 2 * linear_data['x1'] - 3 * linear_data['x2']
        y = (y + np.random.default_rng(1).normal(0, 0.5, len(y))).to_numpy()
        predictor = make_predictor(lambda x: 1 + 2 * x['x1'] - 3 * x['x2'], linear_data, y=y)

        result = FeatureImportanceExplainer(
            predictor, loss=loss, compare='difference', random_state=0
        ).explain()

        assert result.importance('x3') == pytest.approx(0.0, abs=1e-12)
        assert result.importance('x2') > 0


class TestClassifierLosses:
    """测试分类模型的损失函数"""

    @pytest.fixture
    def classifier_data(self, linear_data):
        return linear_data, (linear_data['x1'] > 0).astype(int).to_numpy()

    def test_ce_rejected_for_probabilities(self, classifier_data):
        """测试概率输出不能使用分类错误率"""
        data, labels = classifier_data
        model = LogisticRegression().fit(data, labels)
        predictor = make_predictor(model, data, y=labels, family='sklearn_classifier', class_='1')

        with pytest.raises(InvalidConfigError, match="logloss"):
            FeatureImportanceExplainer(predictor, loss='ce')

    def test_logloss_with_named_labels(self, classifier_data):
        """测试非0/1标签按所选输出列映射"""
        data, labels = classifier_data
        named = np.where(labels == 1, 'pos', 'neg')
        model = LogisticRegression().fit(data, named)
        predictor = make_predictor(model, data, y=named, family='sklearn_classifier', class_='pos')

        result = FeatureImportanceExplainer(
            predictor, loss='logloss', compare='difference', random_state=0
        ).explain()

        assert np.isfinite(result.original_error)
        assert result.ranking()[0] == 'x1'
        assert result.importance('x1') > 0

    def test_logloss_unmatched_labels(self, linear_data):
        """测试标签既不是0/1也不匹配输出列名"""
        labels = np.where(linear_data['x1'] > 0, 1, -1)
        predictor = make_predictor(
            lambda x: 1 / (1 + np.exp(-x['x1'].to_numpy())), linear_data, y=labels
        )
        explainer = FeatureImportanceExplainer(predictor, loss='logloss')

        with pytest.raises(InvalidConfigError, match="0/1 labels"):
            explainer.explain()


class TestFeatureSelection:
    """测试要评估的特征列表"""

    def test_empty_feature_list(self, predictor1):
        """测试空特征列表"""
        explainer = FeatureImportanceExplainer(predictor1, method='cartesian')

        with pytest.raises(InvalidConfigError, match="At least one feature"):
            explainer.explain(features=[])
