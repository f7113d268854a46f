"""
模型解释性示例

演示如何用预测适配器和各解释引擎解释一个随机森林回归模型
"""

import numpy as np
import pandas as pd
from sklearn.datasets import load_diabetes
from sklearn.ensemble import RandomForestRegressor
from sklearn.model_selection import train_test_split

# 导入解释性工具
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from blackbox_iml import (
    FeatureImportanceExplainer,
    InterpretationError,
    LocalSurrogateExplainer,
    PartialDependenceExplainer,
    ShapleyExplainer,
    TreeSurrogateExplainer,
    get_config,
    make_predictor,
    setup_logging
)


def create_sample_data():
    """创建示例数据"""
    print("=== 创建示例数据 ===")

    data = load_diabetes(as_frame=True)
    X, y = data.data, data.target

    # 加一个类别特征，演示混合类型
    X = X.copy()
    X['sex'] = pd.Categorical(np.where(X['sex'] > 0, 'male', 'female'))

    X_train, X_test, y_train, y_test = train_test_split(X, y, test_size=0.3, random_state=42)

    print(f"数据集大小: {X.shape}")
    print(f"特征数量: {X.shape[1]}")

    return X_train, X_test, y_train, y_test


def create_model(X_train, y_train):
    """训练黑盒模型"""
    print("\n=== 训练随机森林 ===")

    encoded = X_train.assign(sex=(X_train['sex'] == 'male').astype(float))
    model = RandomForestRegressor(n_estimators=100, random_state=42)
    model.fit(encoded, y_train)

    def predict(newdata):
        return model.predict(newdata.assign(sex=(newdata['sex'] == 'male').astype(float)))

    return predict


def demonstrate_feature_importance(predictor, config):
    """特征重要性演示"""
    explainer = FeatureImportanceExplainer.from_config(
        predictor, config.feature_importance,
        random_state=config.random_state, n_jobs=config.parallel.n_jobs
    )
    result = explainer.explain()

    print("排列特征重要性 (前5):")
    print(result.results.head().to_string(index=False))
    return result


def demonstrate_partial_dependence(predictor, config, feature):
    """部分依赖演示"""
    explainer = PartialDependenceExplainer.from_config(
        predictor, config.partial_dependence, feature=feature, n_jobs=config.parallel.n_jobs
    )
    result = explainer.result
    print(f"{feature} 的部分依赖:")
    print(result.pdp_frame()[[feature, '.value']].to_string(index=False))

    # 以最小网格点为锚点中心化ICE曲线
    centered = explainer.center(result.grid[feature].min())
    spread = centered.ice[:, -1, 0]
    print(f"中心化ICE曲线终点: 均值 {spread.mean():.2f}, 标准差 {spread.std():.2f}")
    return result


def demonstrate_local_explanations(predictor, config, instance):
    """局部解释演示：局部代理模型与Shapley值"""
    local = LocalSurrogateExplainer.from_config(
        predictor, config.local_surrogate, x_interest=instance, random_state=config.random_state
    ).result
    print("局部代理模型系数:")
    print(local.results.to_string(index=False))
    print(f"局部拟合度 R²: {local.fidelity['pred']:.3f}")

    shapley = ShapleyExplainer.from_config(
        predictor, config.shapley, x_interest=instance,
        random_state=config.random_state, n_jobs=config.parallel.n_jobs
    ).result
    print(f"Shapley值 ({shapley.method}, 平均预测 {shapley.y_hat_average['pred']:.1f}):")
    print(shapley.results.sort_values('phi', key=np.abs, ascending=False).to_string(index=False))
    return local, shapley


def demonstrate_tree_surrogate(predictor, config):
    """全局代理树演示"""
    result = TreeSurrogateExplainer.from_config(
        predictor, config.tree_surrogate, random_state=config.random_state
    ).result
    print(f"代理树 R²: {result.r_squared['pred']:.3f}, 叶节点数: {result.n_leaves}")
    print(result.rules)
    return result


def main():
    """主函数"""
    config = get_config()
    setup_logging(config.logging.log_level, config.logging.log_file)

    print("模型解释性功能演示")
    print("=" * 50)

    try:
        X_train, X_test, y_train, y_test = create_sample_data()
        predict = create_model(X_train, y_train)
        predictor = make_predictor(predict, X_test, y=y_test.to_numpy())

        print("\n1. 特征重要性分析演示")
        importance = demonstrate_feature_importance(predictor, config)

        print("\n2. 部分依赖演示")
        demonstrate_partial_dependence(predictor, config, importance.ranking()[0])

        print("\n3. 局部解释演示")
        demonstrate_local_explanations(predictor, config, X_test.iloc[0])

        print("\n4. 全局代理树演示")
        demonstrate_tree_surrogate(predictor, config)

        print("\n" + "=" * 50)
        print("模型解释性演示完成!")

    except InterpretationError as e:
        print(f"\n演示过程中出现错误: {e}")


if __name__ == "__main__":
    main()
