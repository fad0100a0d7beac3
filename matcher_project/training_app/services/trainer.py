"""
Trainer service for matcher models.
"""
import json
import os
from typing import Dict, List, Optional

import pandas as pd

from dataset_app.services import DatasetStorage
from model_registry.artifacts import ClassifierArtifact
from model_registry.services import ModelPaths, ModelStorage
from model_registry.services.registry import LABELS_FILENAME
from shared.features import Attribute, FeatureSettings
from shared.utils import Timer, get_logger
from shared.utils.exceptions import NotFoundError, TrainingError
from training_app.services.classifiers import TrainingSettings, fit_semantic_classifier

logger = get_logger(__name__)


class ModelTrainer:
    """
    Service for training matcher models.
    
    Reads everything a run needs from the stores and the model's
    workspace files, fits a classifier and hands back the artifact.
    The training state of the model is left to the caller.
    """
    
    def __init__(
        self,
        models: Optional[ModelStorage] = None,
        datasets: Optional[DatasetStorage] = None
    ):
        self.models = models or ModelStorage()
        self.datasets = datasets or DatasetStorage()
    
    def _read_training_data(self) -> List[Attribute]:
        """Attributes of every stored dataset."""
        keys = self.datasets.keys()
        if not keys:
            raise NotFoundError("No csv training datasets have been found.")
        
        attributes: List[Attribute] = []
        for key in keys:
            attributes.extend(self.datasets.load_attributes(key))
        logger.info(f"Loaded {len(attributes)} columns from {len(keys)} datasets")
        return attributes
    
    def _read_labeled_data(self, paths: ModelPaths) -> Dict[str, str]:
        """Column id -> class labels from the workspace, limited to the model's classes."""
        labels_path = os.path.join(paths.labels_dir_path, LABELS_FILENAME)
        if not os.path.exists(labels_path):
            raise NotFoundError("No labeled datasets have been found.")
        
        try:
            df = pd.read_csv(labels_path, dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            df = pd.DataFrame(columns=['attr_id', 'class'])
        
        classes = set(paths.model.classes)
        labels: Dict[str, str] = {}
        for attr_id, label in zip(df.get('attr_id', []), df.get('class', [])):
            if label not in classes:
                logger.warning(
                    f"Ignoring label '{label}' of column {attr_id}: "
                    f"not a class of model {paths.model.id}"
                )
                continue
            labels[attr_id] = label
        
        if not labels:
            raise NotFoundError("No labeled datasets have been found.")
        return labels
    
    def _read_settings(self, paths: ModelPaths) -> TrainingSettings:
        """Training settings from the workspace config files and the model record."""
        try:
            with open(paths.features_config_path) as f:
                features = json.load(f)
            with open(paths.cost_matrix_config_path) as f:
                cost_matrix = json.load(f)
        except (OSError, ValueError) as e:
            raise TrainingError(f"Could not read workspace configuration: {e}")
        
        model = paths.model
        return TrainingSettings(
            resampling_strategy=model.resampling_strategy,
            feature_settings=FeatureSettings.from_config(features),
            cost_matrix=cost_matrix,
            num_bags=model.num_bags,
            bag_size=model.bag_size,
        )
    
    def train(self, model_id: int) -> Optional[ClassifierArtifact]:
        """
        Train a model from its workspace.
        
        Args:
            model_id: Model to train
        
        Returns:
            The trained artifact, or None if the model does not exist
        
        Raises:
            NotFoundError: Missing workspace, datasets or labels
        """
        paths = self.models.identify_paths(model_id)
        if paths is None:
            return None
        
        if not os.path.isdir(paths.workspace_path):
            raise NotFoundError(f"Workspace of model {model_id} does not exist")
        
        attributes = self._read_training_data()
        labels = self._read_labeled_data(paths)
        if not any(attr.column_id in labels for attr in attributes):
            raise NotFoundError("No labeled datasets have been found.")
        
        settings = self._read_settings(paths)
        model = paths.model
        
        with Timer(f"training model {model_id}"):
            artifact = fit_semantic_classifier(
                model.classes,
                attributes,
                labels,
                settings,
                model_type=model.model_type,
            )
        
        logger.info(f"Trained model {model_id}: {artifact.metrics}")
        return artifact
