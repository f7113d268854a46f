"""通用工具模块"""

from .config import (
    FeatureImportanceConfig,
    PartialDependenceConfig,
    LocalSurrogateConfig,
    ShapleyConfig,
    TreeSurrogateConfig,
    ParallelConfig,
    LoggingConfig,
    InterpretationConfig,
    ConfigManager,
    get_config
)
from .parallel import parallel_map, resolve_rng, spawn_seeds
from .logging import setup_logging

__all__ = [
    'FeatureImportanceConfig',
    'PartialDependenceConfig',
    'LocalSurrogateConfig',
    'ShapleyConfig',
    'TreeSurrogateConfig',
    'ParallelConfig',
    'LoggingConfig',
    'InterpretationConfig',
    'ConfigManager',
    'get_config',
    'parallel_map',
    'resolve_rng',
    'spawn_seeds',
    'setup_logging'
]
