"""
Serializable trained classifier.
"""
from typing import Any, Dict, List, Optional, Sequence

from shared.features import FeatureExtractor


class ClassifierArtifact:
    """
    Everything needed to predict with a trained model.
    
    Holds the fitted estimator, the canonical class list it was trained
    for, the (fitted) feature extractors that produce its input vectors,
    and the post-processing configuration. Persisted with pickle.
    """
    
    def __init__(
        self,
        estimator: Any,
        classes: Sequence[str],
        feature_extractors: Sequence[FeatureExtractor],
        model_type: str,
        post_processing_config: Optional[Dict[str, Any]] = None,
        metrics: Optional[Dict[str, float]] = None,
    ):
        self.estimator = estimator
        self.classes = list(classes)
        self.feature_extractors = list(feature_extractors)
        self.model_type = model_type
        self.post_processing_config = post_processing_config
        self.metrics = dict(metrics or {})
    
    @property
    def feature_names(self) -> List[str]:
        return [name for e in self.feature_extractors for name in e.feature_names()]
    
    def __repr__(self) -> str:
        return (
            f"ClassifierArtifact({self.model_type}, {len(self.classes)} classes, "
            f"{len(self.feature_extractors)} extractors)"
        )
