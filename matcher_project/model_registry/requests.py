"""
Validated create/update payloads for matcher models.
"""
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Union

from model_registry.models import ModelType, SamplingStrategy
from shared.features import FeatureSettings
from shared.utils.exceptions import ValidationError


@dataclass
class ModelRequest:
    """
    Fields a client may set on a model. ``None`` means "not given".
    
    For ``label_data`` the distinction matters on update: ``None`` keeps
    the stored labels while an empty dict clears them.
    """
    
    description: Optional[str] = None
    model_type: Optional[str] = None
    classes: Optional[List[str]] = None
    features: Optional[Dict[str, Any]] = None
    cost_matrix: Optional[List[List[float]]] = None
    resampling_strategy: Optional[str] = None
    label_data: Optional[Dict[Union[int, str], str]] = None
    num_bags: Optional[int] = None
    bag_size: Optional[int] = None
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelRequest':
        """Parse and validate a JSON request body."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}")
        
        request = cls()
        
        description = data.get('description')
        if description is not None:
            if not isinstance(description, str):
                raise ValidationError("'description' must be a string")
            request.description = description
        
        model_type = data.get('model_type')
        if model_type is not None:
            model_type = str(model_type).upper()
            if model_type not in ModelType.values:
                raise ValidationError(f"Unknown model type: {data['model_type']}")
            request.model_type = model_type
        
        strategy = data.get('resampling_strategy')
        if strategy is not None:
            strategy = str(strategy).upper()
            if strategy not in SamplingStrategy.values:
                raise ValidationError(f"Unknown resampling strategy: {data['resampling_strategy']}")
            request.resampling_strategy = strategy
        
        classes = data.get('classes')
        if classes is not None:
            if not isinstance(classes, list) or not all(isinstance(c, str) for c in classes):
                raise ValidationError("'classes' must be a list of strings")
            if len(set(classes)) != len(classes):
                raise ValidationError("'classes' must not contain duplicates")
            request.classes = list(classes)
        
        features = data.get('features')
        if features is not None:
            request.features = FeatureSettings.from_config(features).to_dict()
        
        cost_matrix = data.get('cost_matrix')
        if cost_matrix is not None:
            request.cost_matrix = _parse_cost_matrix(cost_matrix)
        
        label_data = data.get('label_data')
        if label_data is not None:
            if not isinstance(label_data, dict) or not all(isinstance(v, str) for v in label_data.values()):
                raise ValidationError("'label_data' must map column ids to class labels")
            request.label_data = {_column_key(k): v for k, v in label_data.items()}
        
        for name in ('num_bags', 'bag_size'):
            value = data.get(name)
            if value is not None:
                if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                    raise ValidationError(f"'{name}' must be a positive integer")
                setattr(request, name, value)
        
        return request


def _column_key(key: Any) -> Union[int, str]:
    # unparseable keys are kept so they are reported as invalid columns
    try:
        return int(key)
    except (TypeError, ValueError):
        return key


def _parse_cost_matrix(value: Any) -> List[List[float]]:
    if not isinstance(value, list) or not all(isinstance(row, list) for row in value):
        raise ValidationError("'cost_matrix' must be a list of rows")
    matrix = []
    for row in value:
        parsed = []
        for cell in row:
            if isinstance(cell, bool) or not isinstance(cell, (int, float)) or cell < 0:
                raise ValidationError("'cost_matrix' entries must be non-negative numbers")
            parsed.append(float(cell))
        matrix.append(parsed)
    return matrix


def validate_cost_matrix(classes: List[str], cost_matrix: List[List[float]]) -> None:
    """A cost matrix must be empty or square over the model's classes."""
    if not cost_matrix:
        return
    size = len(classes)
    if len(cost_matrix) != size or any(len(row) != size for row in cost_matrix):
        raise ValidationError(
            f"'cost_matrix' must be a {size}x{size} matrix matching 'classes'"
        )
