"""
集成测试模块

测试各解释引擎在同一预测适配器上的协同
"""

# 集成测试配置
INTEGRATION_CONFIG = {
    'random_seed': 42,
    'tolerance': 1e-4
}
