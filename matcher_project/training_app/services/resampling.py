"""
Class rebalancing and bagging of labelled training columns.
"""
import math
from collections import OrderedDict
from typing import List, Optional, Sequence, Tuple

import numpy as np

from model_registry.models import SamplingStrategy
from shared.features import Attribute
from shared.utils import get_logger
from shared.utils.exceptions import TrainingError

logger = get_logger(__name__)

DEFAULT_NUM_BAGS = 50
DEFAULT_BAG_SIZE = 100
RESAMPLING_SEED = 42

Instance = Tuple[Attribute, str]

_BAGGING_BASE = {
    SamplingStrategy.BAGGING: SamplingStrategy.NO_RESAMPLING,
    SamplingStrategy.BAGGING_TO_MAX: SamplingStrategy.UPSAMPLE_TO_MAX,
    SamplingStrategy.BAGGING_TO_MEAN: SamplingStrategy.RESAMPLE_TO_MEAN,
}


def bag_attribute(
    attribute: Attribute,
    num_bags: int,
    bag_size: int,
    rng: np.random.Generator
) -> List[Attribute]:
    """Copies of a column built from values drawn with replacement."""
    bags = []
    for i in range(num_bags):
        if attribute.values:
            picks = rng.integers(0, len(attribute.values), size=bag_size)
            values = [attribute.values[j] for j in picks]
        else:
            values = []
        bags.append(Attribute(
            id=f"{attribute.id}#bag{i}",
            name=attribute.name,
            values=values,
            column_id=attribute.column_id,
        ))
    return bags


def _group(instances: Sequence[Instance]) -> 'OrderedDict[str, List[Instance]]':
    groups: 'OrderedDict[str, List[Instance]]' = OrderedDict()
    for instance in instances:
        groups.setdefault(instance[1], []).append(instance)
    return groups


def _resize(group: List[Instance], target: int, rng: np.random.Generator, allow_down: bool) -> List[Instance]:
    if len(group) < target:
        extra = rng.integers(0, len(group), size=target - len(group))
        return group + [group[i] for i in extra]
    if allow_down and len(group) > target:
        keep = sorted(rng.choice(len(group), size=target, replace=False))
        return [group[i] for i in keep]
    return group


def resample(
    instances: Sequence[Instance],
    strategy: str,
    num_bags: Optional[int] = None,
    bag_size: Optional[int] = None,
    seed: int = RESAMPLING_SEED
) -> List[Instance]:
    """
    Rebalance labelled instances according to a sampling strategy.
    
    Args:
        instances: (attribute, label) pairs
        strategy: A SamplingStrategy value
        num_bags: Bags per column for the bagging strategies
        bag_size: Values per bag for the bagging strategies
        seed: Random seed, fixed so training is reproducible
    
    Returns:
        The resampled (attribute, label) pairs, grouped by label
    """
    if strategy not in SamplingStrategy.values:
        raise TrainingError(f"Unknown resampling strategy: {strategy}")
    
    rng = np.random.default_rng(seed)
    instances = list(instances)
    
    if strategy in _BAGGING_BASE:
        num_bags = num_bags or DEFAULT_NUM_BAGS
        bag_size = bag_size or DEFAULT_BAG_SIZE
        instances = [
            (bag, label)
            for attribute, label in instances
            for bag in bag_attribute(attribute, num_bags, bag_size, rng)
        ]
        strategy = _BAGGING_BASE[strategy]
    
    if strategy == SamplingStrategy.NO_RESAMPLING or not instances:
        return instances
    
    groups = _group(instances)
    sizes = [len(g) for g in groups.values()]
    
    if strategy == SamplingStrategy.UPSAMPLE_TO_MAX:
        target, allow_down = max(sizes), False
    elif strategy == SamplingStrategy.UPSAMPLE_TO_MEAN:
        target, allow_down = math.ceil(sum(sizes) / len(sizes)), False
    else:
        target, allow_down = math.ceil(sum(sizes) / len(sizes)), True
    
    logger.debug(f"Resampling {len(groups)} classes to {target} instances each ({strategy})")
    
    result: List[Instance] = []
    for group in groups.values():
        result.extend(_resize(group, target, rng, allow_down))
    return result
