"""
Feature settings and feature vector construction.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from shared.utils import get_logger
from shared.utils.exceptions import FeatureExtractionError, ValidationError
from .attribute import Attribute
from .extractors import (
    CLASS_EXAMPLE_GROUPS,
    GROUP_FEATURES,
    SINGLE_FEATURES,
    FeatureExtractor,
    GroupFeatureExtractor,
    SingleFeatureExtractor,
    normalise_header,
)

logger = get_logger(__name__)

ALL_GROUPS = list(GROUP_FEATURES) + list(CLASS_EXAMPLE_GROUPS)

# Used when a model request carries no feature configuration at all.
DEFAULT_FEATURES_CONFIG: Dict[str, Any] = {
    'active_features': list(SINGLE_FEATURES),
    'active_feature_groups': [
        'inferred-data-type',
        'stats-of-text-length',
        'stats-of-numerical-type',
        'char-dist-features',
        'prop-instances-per-class-in-knearestneighbours',
    ],
    'feature_extractor_params': {},
}

_GROUP_PARAMS = {
    'min-editdistance-from-class-examples': {'max-comparisons-per-class': 'max_comparisons_per_class'},
    'prop-instances-per-class-in-knearestneighbours': {'num-neighbours': 'num_neighbours'},
}


class FeatureSettings:
    """
    Which extractors are enabled for a model, and their parameters.
    
    Extractors are always instantiated in catalogue order, so the
    feature layout depends only on the configuration and never on the
    order names were supplied in.
    """
    
    def __init__(
        self,
        active_features: Iterable[str] = (),
        active_feature_groups: Iterable[str] = (),
        feature_extractor_params: Optional[Dict[str, Dict[str, Any]]] = None
    ):
        active_features = set(active_features)
        active_feature_groups = set(active_feature_groups)
        
        unknown = sorted(active_features - set(SINGLE_FEATURES))
        unknown += sorted(active_feature_groups - set(ALL_GROUPS))
        if unknown:
            raise ValidationError(f"Unknown feature names: {', '.join(unknown)}")
        
        self.active_features = [n for n in SINGLE_FEATURES if n in active_features]
        self.active_feature_groups = [n for n in ALL_GROUPS if n in active_feature_groups]
        self.feature_extractor_params = dict(feature_extractor_params or {})
        
        for group, params in self.feature_extractor_params.items():
            allowed = _GROUP_PARAMS.get(group, {})
            bad = sorted(set(params) - set(allowed))
            if bad:
                raise ValidationError(f"Unknown parameters for feature group '{group}': {', '.join(bad)}")
            for key, value in params.items():
                try:
                    if int(value) <= 0:
                        raise ValueError
                except (TypeError, ValueError):
                    raise ValidationError(
                        f"Parameter '{key}' of feature group '{group}' must be a positive integer"
                    )
    
    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> 'FeatureSettings':
        """Build settings from a model's ``features`` configuration dict."""
        config = config or {}
        if not isinstance(config, dict):
            raise ValidationError("Feature configuration must be an object")
        return cls(
            active_features=config.get('active_features', []),
            active_feature_groups=config.get('active_feature_groups', []),
            feature_extractor_params=config.get('feature_extractor_params', {}),
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'active_features': list(self.active_features),
            'active_feature_groups': list(self.active_feature_groups),
            'feature_extractor_params': dict(self.feature_extractor_params),
        }
    
    def _group_kwargs(self, group: str) -> Dict[str, int]:
        mapping = _GROUP_PARAMS.get(group, {})
        params = self.feature_extractor_params.get(group, {})
        return {mapping[key]: int(value) for key, value in params.items()}
    
    def create_extractors(
        self,
        classes: Sequence[str],
        attributes: Sequence[Attribute] = (),
        labels: Optional[Dict[str, str]] = None
    ) -> List[FeatureExtractor]:
        """
        Instantiate the enabled extractors.
        
        Args:
            classes: Canonical class list
            attributes: Training attributes; class-example groups take
                their labelled headers from these
            labels: Column id -> class label for the training attributes
        
        Returns:
            Extractors in catalogue order
        """
        labels = labels or {}
        extractors: List[FeatureExtractor] = [
            SingleFeatureExtractor(name, SINGLE_FEATURES[name])
            for name in self.active_features
        ]
        
        examples = []
        seen_columns = set()
        for attr in attributes:
            label = labels.get(attr.column_id)
            if label is None or attr.column_id in seen_columns:
                continue
            seen_columns.add(attr.column_id)
            examples.append((attr.column_id, normalise_header(attr.name), label))
        
        for group in self.active_feature_groups:
            if group in GROUP_FEATURES:
                names, func = GROUP_FEATURES[group]
                extractors.append(GroupFeatureExtractor(group, names, func))
            else:
                extractor_cls = CLASS_EXAMPLE_GROUPS[group]
                extractors.append(extractor_cls(classes, examples, **self._group_kwargs(group)))
        
        return extractors


class FeatureVectorBuilder:
    """
    Turns attributes into fixed-length numeric feature vectors.
    
    The vector layout is derived once from the extractor list: single
    extractors contribute one column, group extractors one column per
    feature name.
    """
    
    def __init__(self, extractors: Sequence[FeatureExtractor]):
        self.extractors = list(extractors)
        self.feature_names: List[str] = [
            name for extractor in self.extractors for name in extractor.feature_names()
        ]
    
    def __len__(self) -> int:
        return len(self.feature_names)
    
    def extract(self, attribute: Attribute) -> List[float]:
        """Feature vector for a single attribute."""
        vector: List[float] = []
        for extractor in self.extractors:
            values = extractor.extract(attribute)
            expected = len(extractor.feature_names())
            if len(values) != expected:
                raise FeatureExtractionError(
                    f"Extractor {extractor.name} produced {len(values)} values, expected {expected}"
                )
            vector.extend(values)
        return vector
    
    def build(self, attributes: Sequence[Attribute]) -> np.ndarray:
        """
        Feature matrix for a list of attributes.
        
        Returns:
            Array of shape (len(attributes), len(feature_names))
        """
        matrix = np.zeros((len(attributes), len(self.feature_names)), dtype=float)
        for row, attribute in enumerate(attributes):
            if self.feature_names:
                matrix[row, :] = self.extract(attribute)
        logger.debug(f"Extracted {len(self.feature_names)} features for {len(attributes)} attributes")
        return matrix
