"""
解释性配置管理模块
用于加载、校验和保存各解释引擎的配置参数
"""

import yaml
from typing import Any, Callable, Dict, List, Optional, Union
from dataclasses import dataclass, field, asdict
from pathlib import Path
import logging

from ..exceptions import InvalidConfigError

logger = logging.getLogger(__name__)

COMPARE_MODES = ('ratio', 'difference')
IMPORTANCE_METHODS = ('shuffle', 'cartesian')
PDP_METHODS = ('pdp', 'ice', 'pdp+ice')
GRID_TYPES = ('equidistant', 'quantile')
DISTANCES = ('euclidean', 'gower')
FEATURE_SELECTIONS = ('lasso_path', 'none')
SHAPLEY_METHODS = ('auto', 'exact', 'sampling')
SURROGATE_TASKS = ('auto', 'regression', 'classification')

# 精确枚举 2^|F| 个联盟的特征数上限
MAX_EXACT_FEATURES = 20


def _check_choice(name: str, value: Any, choices: tuple) -> None:
    if value not in choices:
        raise InvalidConfigError(
            f"{name} must be one of {list(choices)}, got {value!r}",
            details={'parameter': name, 'value': value}
        )


def _check_positive_int(name: str, value: Any, minimum: int = 1) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise InvalidConfigError(
            f"{name} must be an integer >= {minimum}, got {value!r}",
            details={'parameter': name, 'value': value}
        )


@dataclass
class FeatureImportanceConfig:
    """特征重要性配置"""
    loss: Union[str, Callable] = 'mae'
    compare: str = 'ratio'
    n_repetitions: int = 5
    method: str = 'shuffle'

    def __post_init__(self):
        if not (isinstance(self.loss, str) or callable(self.loss)):
            raise InvalidConfigError("loss must be a loss name or a callable")
        _check_choice('compare', self.compare, COMPARE_MODES)
        _check_choice('method', self.method, IMPORTANCE_METHODS)
        _check_positive_int('n_repetitions', self.n_repetitions)


@dataclass
class PartialDependenceConfig:
    """部分依赖/ICE配置"""
    method: str = 'pdp+ice'
    grid_size: int = 20
    grid_type: str = 'equidistant'
    center_at: Optional[Any] = None

    def __post_init__(self):
        _check_choice('method', self.method, PDP_METHODS)
        _check_choice('grid_type', self.grid_type, GRID_TYPES)
        _check_positive_int('grid_size', self.grid_size, minimum=2)


@dataclass
class LocalSurrogateConfig:
    """局部代理模型配置"""
    n_samples: int = 1000
    k: Optional[int] = None
    kernel_width: Optional[float] = None
    distance: str = 'euclidean'
    feature_selection: str = 'lasso_path'

    def __post_init__(self):
        _check_positive_int('n_samples', self.n_samples, minimum=2)
        if self.k is not None:
            _check_positive_int('k', self.k)
        if self.kernel_width is not None:
            if isinstance(self.kernel_width, bool) or not isinstance(self.kernel_width, (int, float)) \
                    or not self.kernel_width > 0 or self.kernel_width == float('inf'):
                raise InvalidConfigError(
                    f"kernel_width must be a positive finite number, got {self.kernel_width!r}",
                    details={'parameter': 'kernel_width', 'value': self.kernel_width}
                )
        _check_choice('distance', self.distance, DISTANCES)
        _check_choice('feature_selection', self.feature_selection, FEATURE_SELECTIONS)


@dataclass
class ShapleyConfig:
    """Shapley值配置"""
    sample_size: int = 100
    method: str = 'auto'
    exact_threshold: int = 10

    def __post_init__(self):
        _check_positive_int('sample_size', self.sample_size)
        _check_choice('method', self.method, SHAPLEY_METHODS)
        _check_positive_int('exact_threshold', self.exact_threshold)
        if self.exact_threshold > MAX_EXACT_FEATURES:
            raise InvalidConfigError(
                f"exact_threshold must not exceed {MAX_EXACT_FEATURES}",
                details={'parameter': 'exact_threshold', 'value': self.exact_threshold}
            )


@dataclass
class TreeSurrogateConfig:
    """全局代理树配置"""
    max_depth: int = 2
    task: str = 'auto'

    def __post_init__(self):
        _check_positive_int('max_depth', self.max_depth)
        _check_choice('task', self.task, SURROGATE_TASKS)


@dataclass
class ParallelConfig:
    """并行配置"""
    n_jobs: int = 1
    verbose: bool = False

    def __post_init__(self):
        if isinstance(self.n_jobs, bool) or not isinstance(self.n_jobs, int) or self.n_jobs == 0:
            raise InvalidConfigError(
                f"n_jobs must be a non-zero integer, got {self.n_jobs!r}",
                details={'parameter': 'n_jobs', 'value': self.n_jobs}
            )


@dataclass
class LoggingConfig:
    """日志配置"""
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    def __post_init__(self):
        _check_choice('log_level', str(self.log_level).upper(),
                      ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'))


@dataclass
class InterpretationConfig:
    """解释性主配置类"""
    random_state: Optional[int] = None
    feature_importance: FeatureImportanceConfig = field(default_factory=FeatureImportanceConfig)
    partial_dependence: PartialDependenceConfig = field(default_factory=PartialDependenceConfig)
    local_surrogate: LocalSurrogateConfig = field(default_factory=LocalSurrogateConfig)
    shapley: ShapleyConfig = field(default_factory=ShapleyConfig)
    tree_surrogate: TreeSurrogateConfig = field(default_factory=TreeSurrogateConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: Optional[Dict[str, Any]]) -> 'InterpretationConfig':
        """从字典创建配置，未知键视为配置错误"""
        config_dict = dict(config_dict or {})
        sections = {
            'feature_importance': FeatureImportanceConfig,
            'partial_dependence': PartialDependenceConfig,
            'local_surrogate': LocalSurrogateConfig,
            'shapley': ShapleyConfig,
            'tree_surrogate': TreeSurrogateConfig,
            'parallel': ParallelConfig,
            'logging': LoggingConfig
        }

        unknown = set(config_dict) - set(sections) - {'random_state'}
        if unknown:
            raise InvalidConfigError(f"Unknown configuration sections: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {'random_state': config_dict.get('random_state')}
        for name, section_cls in sections.items():
            try:
                kwargs[name] = section_cls(**(config_dict.get(name) or {}))
            except TypeError as e:
                raise InvalidConfigError(f"Invalid keys in section '{name}': {e}") from e

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigManager:
    """配置管理器"""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径，如果为None则使用默认路径
        """
        if config_path is None:
            project_root = Path(__file__).parent.parent.parent
            config_path = project_root / "configs" / "interpretation_config.yaml"

        self.config_path = Path(config_path)
        self._config: Optional[InterpretationConfig] = None

    def load_config(self) -> InterpretationConfig:
        """
        加载配置文件；文件不存在时使用默认配置

        Returns:
            InterpretationConfig: 解释性配置对象
        """
        if not self.config_path.exists():
            logger.warning(f"Config file {self.config_path} not found, using defaults")
            self._config = InterpretationConfig()
            return self._config

        with open(self.config_path, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f) or {}

        if not isinstance(config_dict, dict):
            raise InvalidConfigError(f"Config file {self.config_path} must contain a mapping")

        self._config = InterpretationConfig.from_dict(config_dict)
        logger.debug(f"Loaded configuration from {self.config_path}")
        return self._config

    @property
    def config(self) -> InterpretationConfig:
        """
        获取配置对象，如果未加载则自动加载

        Returns:
            InterpretationConfig: 解释性配置对象
        """
        if self._config is None:
            self.load_config()
        return self._config

    def validate_config(self) -> bool:
        """
        重新校验配置（各字段在构造时已校验，这里覆盖运行时修改过的值）

        Returns:
            bool: 配置是否有效
        """
        InterpretationConfig.from_dict(self.config.to_dict())
        return True

    def save_config(self, config: InterpretationConfig, save_path: Optional[Union[str, Path]] = None):
        """
        保存配置到文件

        Args:
            config: 要保存的配置对象
            save_path: 保存路径，如果为None则覆盖原文件
        """
        if save_path is None:
            save_path = self.config_path

        config_dict = config.to_dict()
        if callable(config_dict['feature_importance']['loss']):
            raise InvalidConfigError("A callable loss cannot be saved to a config file")

        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_dict, f, default_flow_style=False, allow_unicode=True)


# 全局配置管理器实例
config_manager = ConfigManager()


def get_config() -> InterpretationConfig:
    """
    获取全局配置对象

    Returns:
        InterpretationConfig: 解释性配置对象
    """
    return config_manager.config
