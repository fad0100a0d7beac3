"""
Classifier fitting and inference for semantic type models.

The lifecycle and the predictor only rely on three calls from this
module: ``fit_semantic_classifier``, ``infer`` and ``native_label_order``.
"""
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score
from torch.utils.data import DataLoader as TorchDataLoader, TensorDataset

from model_registry.artifacts import ClassifierArtifact
from model_registry.models import ModelType, SamplingStrategy
from shared.features import Attribute, FeatureSettings, FeatureVectorBuilder
from shared.utils import Timer, compute_session, get_logger
from shared.utils.exceptions import TrainingError
from training_app.services.resampling import resample

logger = get_logger(__name__)


class TrainingSettings:
    """Everything besides data and labels that shapes a training run."""
    
    def __init__(
        self,
        resampling_strategy: str = SamplingStrategy.RESAMPLE_TO_MEAN,
        feature_settings: Optional[FeatureSettings] = None,
        cost_matrix: Optional[List[List[float]]] = None,
        num_bags: Optional[int] = None,
        bag_size: Optional[int] = None,
    ):
        self.resampling_strategy = resampling_strategy
        self.feature_settings = feature_settings or FeatureSettings()
        self.cost_matrix = cost_matrix or []
        self.num_bags = num_bags
        self.bag_size = bag_size


class TorchMLP(nn.Module):
    """Simple MLP producing one logit per class."""
    
    def __init__(
        self,
        input_dim: int,
        hidden_dims: Sequence[int] = (64, 32),
        output_dim: int = 1,
        dropout: float = 0.2
    ):
        super().__init__()
        
        layers = []
        prev_dim = input_dim
        
        for hidden_dim in hidden_dims:
            layers.extend([
                nn.Linear(prev_dim, hidden_dim),
                nn.ReLU(),
                nn.Dropout(dropout),
            ])
            prev_dim = hidden_dim
        
        layers.append(nn.Linear(prev_dim, output_dim))
        
        self.network = nn.Sequential(*layers)
    
    def forward(self, x):
        return self.network(x)


class TorchMLPClassifier:
    """
    Scikit-learn style wrapper around TorchMLP.
    
    Exposes ``classes_`` (sorted labels seen in training), ``fit``,
    ``predict_proba`` and ``predict``. Inputs are standardised with the
    training mean and deviation. The network is kept on the CPU between
    calls so the wrapper pickles cleanly.
    """
    
    def __init__(
        self,
        hidden_dims: Sequence[int] = (64, 32),
        dropout: float = 0.2,
        epochs: int = 200,
        learning_rate: float = 0.001,
        batch_size: int = 32,
        random_state: int = 42,
        device: Optional[torch.device] = None
    ):
        self.hidden_dims = list(hidden_dims)
        self.dropout = dropout
        self.epochs = epochs
        self.learning_rate = learning_rate
        self.batch_size = batch_size
        self.random_state = random_state
        self.device = device
        self.classes_: Optional[np.ndarray] = None
        self.mean_: Optional[np.ndarray] = None
        self.scale_: Optional[np.ndarray] = None
        self.network: Optional[TorchMLP] = None
    
    def __getstate__(self):
        state = self.__dict__.copy()
        state['device'] = None
        return state
    
    def _device(self) -> torch.device:
        return self.device or torch.device('cpu')
    
    def _scale(self, X: np.ndarray) -> torch.Tensor:
        X = (np.asarray(X, dtype=float) - self.mean_) / self.scale_
        return torch.FloatTensor(X).to(self._device())
    
    def fit(self, X: np.ndarray, y: np.ndarray, sample_weight: Optional[np.ndarray] = None) -> 'TorchMLPClassifier':
        torch.manual_seed(self.random_state)
        X = np.asarray(X, dtype=float)
        self.classes_, y_idx = np.unique(np.asarray(y), return_inverse=True)
        self.mean_ = X.mean(axis=0)
        scale = X.std(axis=0)
        self.scale_ = np.where(scale > 0, scale, 1.0)
        
        if sample_weight is None:
            sample_weight = np.ones(len(y_idx))
        
        device = self._device()
        self.network = TorchMLP(X.shape[1], self.hidden_dims, len(self.classes_), self.dropout).to(device)
        
        dataset = TensorDataset(
            self._scale(X),
            torch.LongTensor(y_idx).to(device),
            torch.FloatTensor(np.asarray(sample_weight, dtype=float)).to(device),
        )
        loader = TorchDataLoader(dataset, batch_size=self.batch_size, shuffle=True)
        optimizer = optim.Adam(self.network.parameters(), lr=self.learning_rate)
        criterion = nn.CrossEntropyLoss(reduction='none')
        
        self.network.train()
        for epoch in range(self.epochs):
            for batch_X, batch_y, batch_w in loader:
                optimizer.zero_grad()
                loss = (criterion(self.network(batch_X), batch_y) * batch_w).mean()
                loss.backward()
                optimizer.step()
        
        self.network = self.network.cpu()
        return self
    
    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        device = self._device()
        network = self.network.to(device)
        network.eval()
        with torch.no_grad():
            probs = torch.softmax(network(self._scale(X)), dim=1).cpu().numpy()
        self.network = network.cpu()
        return probs
    
    def predict(self, X: np.ndarray) -> np.ndarray:
        return self.classes_[np.argmax(self.predict_proba(X), axis=1)]


def create_estimator(
    model_type: str,
    hyperparameters: Optional[Dict[str, Any]] = None,
    device: Optional[torch.device] = None
):
    """Create an unfitted estimator for a model type."""
    hyperparameters = hyperparameters or {}
    if model_type == ModelType.RANDOM_FOREST:
        return RandomForestClassifier(
            n_estimators=hyperparameters.get('n_estimators', 100),
            max_depth=hyperparameters.get('max_depth', None),
            min_samples_split=hyperparameters.get('min_samples_split', 2),
            random_state=hyperparameters.get('random_state', 42),
        )
    elif model_type == ModelType.NEURAL_NETWORK:
        return TorchMLPClassifier(
            hidden_dims=hyperparameters.get('hidden_dims', [64, 32]),
            dropout=hyperparameters.get('dropout', 0.2),
            epochs=hyperparameters.get('epochs', 200),
            learning_rate=hyperparameters.get('learning_rate', 0.001),
            batch_size=hyperparameters.get('batch_size', 32),
            random_state=hyperparameters.get('random_state', 42),
            device=device,
        )
    raise TrainingError(f"Unknown model type: {model_type}")


def cost_matrix_weights(classes: Sequence[str], cost_matrix: Sequence[Sequence[float]]) -> Optional[Dict[str, float]]:
    """
    Per-class sample weights from a misclassification cost matrix.
    
    Row ``i`` holds the cost of predicting each class when the truth is
    ``classes[i]``. A class weighs in proportion to its total
    off-diagonal cost, normalised to a mean of 1.
    
    Returns:
        Class -> weight, or None when the matrix is empty or all zero
    """
    if not cost_matrix:
        return None
    matrix = np.asarray(cost_matrix, dtype=float)
    totals = matrix.sum(axis=1) - np.diag(matrix)
    if not (totals > 0).any():
        return None
    weights = totals / totals[totals > 0].mean()
    return {cls: float(max(w, 1e-3)) for cls, w in zip(classes, weights)}


def native_label_order(estimator) -> List[str]:
    """Labels in the order the estimator's probability columns use."""
    return [str(label) for label in estimator.classes_]


def infer(estimator, X: np.ndarray) -> np.ndarray:
    """Raw class probabilities, one row per instance, in native label order."""
    if len(X) == 0:
        return np.zeros((0, len(estimator.classes_)))
    return np.asarray(estimator.predict_proba(X), dtype=float)


def fit_semantic_classifier(
    classes: Sequence[str],
    attributes: Sequence[Attribute],
    labels: Dict[str, str],
    settings: TrainingSettings,
    model_type: str = ModelType.RANDOM_FOREST,
    hyperparameters: Optional[Dict[str, Any]] = None,
    post_processing_config: Optional[Dict[str, Any]] = None
) -> ClassifierArtifact:
    """
    Train a semantic type classifier.
    
    Args:
        classes: Canonical class list of the model
        attributes: All available attributes; only labelled ones train
        labels: Column id -> class label
        settings: Resampling, feature and cost configuration
        model_type: Estimator family
        hyperparameters: Estimator overrides
        post_processing_config: Carried into the artifact unchanged
    
    Returns:
        The trained ClassifierArtifact
    """
    labelled = [a for a in attributes if a.column_id in labels]
    if not labelled:
        raise TrainingError("None of the labelled columns could be loaded")
    
    instances = resample(
        [(a, labels[a.column_id]) for a in labelled],
        settings.resampling_strategy,
        num_bags=settings.num_bags,
        bag_size=settings.bag_size,
    )
    logger.info(
        f"Training on {len(instances)} instances from {len(labelled)} labelled columns "
        f"({settings.resampling_strategy})"
    )
    
    extractors = settings.feature_settings.create_extractors(classes, labelled, labels)
    builder = FeatureVectorBuilder(extractors)
    if not builder.feature_names:
        raise TrainingError("No features are enabled for this model")
    
    with Timer("feature extraction"):
        X = builder.build([attr for attr, _ in instances])
    y = np.array([label for _, label in instances])
    
    weights = cost_matrix_weights(classes, settings.cost_matrix)
    sample_weight = None
    if weights is not None:
        sample_weight = np.array([weights.get(label, 1.0) for label in y])
    
    with compute_session(f"{model_type} fit") as session:
        estimator = create_estimator(model_type, hyperparameters, device=session.device)
        with Timer(f"{model_type} fit"):
            estimator.fit(X, y, sample_weight=sample_weight)
        train_accuracy = accuracy_score(y, estimator.predict(X))
    
    metrics = {
        'train_accuracy': float(train_accuracy),
        'n_instances': len(instances),
        'n_features': len(builder.feature_names),
    }
    
    return ClassifierArtifact(
        estimator=estimator,
        classes=classes,
        feature_extractors=extractors,
        model_type=model_type,
        post_processing_config=post_processing_config,
        metrics=metrics,
    )
