from .registry import ModelStorage, ModelPaths
from .consistency import ConsistencyChecker

__all__ = [
    'ModelStorage',
    'ModelPaths',
    'ConsistencyChecker',
]
