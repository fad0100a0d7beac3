"""
Model storage service for matcher models and their trained artifacts.
"""
import hashlib
import json
import os
import pickle
import shutil
from datetime import datetime
from typing import List, NamedTuple, Optional

import pandas as pd
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from model_registry.artifacts import ClassifierArtifact
from model_registry.models import MatcherModel, Status, TrainState
from shared.utils import get_logger
from shared.utils.exceptions import ModelRegistryError, NotFoundError

logger = get_logger(__name__)

MODEL_FILENAME = 'model.pkl'
FEATURES_FILENAME = 'features.json'
COST_MATRIX_FILENAME = 'cost_matrix.json'
LABELS_DIRNAME = 'labels'
LABELS_FILENAME = 'labels.csv'


class ModelPaths(NamedTuple):
    model: MatcherModel
    workspace_path: str
    features_config_path: str
    cost_matrix_config_path: str
    labels_dir_path: str


class ModelStorage:
    """
    Service for managing matcher models.
    
    Each model has a workspace directory holding the configuration files
    training reads (features, cost matrix, labels) and, once trained,
    the pickled artifact.
    """
    
    def __init__(self, models_dir: Optional[str] = None):
        """
        Initialize the storage.
        
        Args:
            models_dir: Directory holding model workspaces
        """
        self.models_dir = models_dir or os.path.join(
            settings.MEDIA_ROOT, 'models'
        )
        os.makedirs(self.models_dir, exist_ok=True)
    
    def _compute_hash(self, filepath: str) -> str:
        """Compute SHA256 hash of a file."""
        sha256 = hashlib.sha256()
        with open(filepath, 'rb') as f:
            for chunk in iter(lambda: f.read(8192), b''):
                sha256.update(chunk)
        return sha256.hexdigest()
    
    def _workspace(self, key: int) -> str:
        return os.path.join(self.models_dir, str(key))
    
    def _write_workspace(self, model: MatcherModel) -> None:
        """Write the configuration files training reads."""
        paths = self._paths_for(model)
        os.makedirs(paths.labels_dir_path, exist_ok=True)
        
        with open(paths.features_config_path, 'w') as f:
            json.dump(model.features, f, indent=2)
        with open(paths.cost_matrix_config_path, 'w') as f:
            json.dump(model.cost_matrix, f)
        
        labels = pd.DataFrame(
            [(str(k), v) for k, v in model.label_data.items()],
            columns=['attr_id', 'class'],
        )
        labels.to_csv(os.path.join(paths.labels_dir_path, LABELS_FILENAME), index=False)
    
    def _paths_for(self, model: MatcherModel) -> ModelPaths:
        workspace = self._workspace(model.id)
        return ModelPaths(
            model=model,
            workspace_path=workspace,
            features_config_path=os.path.join(workspace, FEATURES_FILENAME),
            cost_matrix_config_path=os.path.join(workspace, COST_MATRIX_FILENAME),
            labels_dir_path=os.path.join(workspace, LABELS_DIRNAME),
        )
    
    # key-value operations
    
    def get(self, key: int) -> Optional[MatcherModel]:
        return MatcherModel.objects.filter(pk=key).first()
    
    def add(self, model: MatcherModel) -> int:
        """Save a new model and create its workspace."""
        with transaction.atomic():
            model.save()
            self._write_workspace(model)
        logger.info(f"Added model {model.id}")
        return model.id
    
    def update(self, key: int, model: MatcherModel) -> Optional[int]:
        """Overwrite the stored model ``key`` and refresh its workspace files."""
        with transaction.atomic():
            if not MatcherModel.objects.filter(pk=key).exists():
                return None
            model.pk = key
            model.save()
            self._write_workspace(model)
        logger.info(f"Updated model {key}")
        return key
    
    def remove(self, key: int) -> Optional[int]:
        """Delete the model record and its workspace, including any artifact."""
        deleted, _ = MatcherModel.objects.filter(pk=key).delete()
        if not deleted:
            return None
        
        workspace = self._workspace(key)
        try:
            if os.path.exists(workspace):
                shutil.rmtree(workspace)
        except OSError as e:
            logger.error(f"Could not delete workspace of model {key}: {e}")
        
        logger.info(f"Deleted model {key}")
        return key
    
    def keys(self) -> List[int]:
        return list(MatcherModel.objects.values_list('id', flat=True))
    
    def list_values(self) -> List[MatcherModel]:
        return list(MatcherModel.objects.all())
    
    def identify_paths(self, key: int) -> Optional[ModelPaths]:
        """Workspace paths of a model, or None if the model does not exist."""
        model = self.get(key)
        if model is None:
            logger.warning(f"Cannot identify paths, model {key} does not exist")
            return None
        return self._paths_for(model)
    
    # train state
    
    def update_train_state(
        self,
        key: int,
        status: str,
        message: str = '',
        delete_artifact: bool = True,
        change_date: bool = True,
        expected_status: Optional[str] = None,
        expected_date_changed: Optional[datetime] = None
    ) -> Optional[TrainState]:
        """
        Set the training status of a model in a single UPDATE.
        
        Args:
            key: Model id
            status: New status
            message: Status detail
            delete_artifact: Also forget and delete the trained artifact
            change_date: Stamp ``state_date_changed`` with the current time
            expected_status: Only apply the change if the current status
                is this one
            expected_date_changed: Only apply the change if the state was
                last changed at this time
        
        Returns:
            The new state, or None if the model is missing or its status
            did not match the expectations
        """
        queryset = MatcherModel.objects.filter(pk=key)
        if expected_status is not None:
            queryset = queryset.filter(status=expected_status)
        if expected_date_changed is not None:
            queryset = queryset.filter(state_date_changed=expected_date_changed)
        
        fields = {'status': status, 'status_message': message}
        if change_date:
            fields['state_date_changed'] = timezone.now()
        if delete_artifact:
            fields.update(model_path=None, artifact_hash=None)
        
        if not queryset.update(**fields):
            return None
        
        if delete_artifact:
            self._delete_artifact_file(key)
        
        logger.info(f"Model {key} is now {status}" + (f": {message}" if message else ""))
        return self._current_state(key)
    
    def try_mark_busy(self, key: int) -> Optional[TrainState]:
        """
        Move a model to BUSY unless it already is.
        
        The status check and the change happen in one conditional UPDATE,
        so at most one caller wins. The previous artifact is dropped.
        
        Returns:
            The BUSY state if this call made the transition, else None
        """
        updated = (
            MatcherModel.objects
            .filter(pk=key)
            .exclude(status=Status.BUSY)
            .update(
                status=Status.BUSY,
                status_message='',
                state_date_changed=timezone.now(),
                model_path=None,
                artifact_hash=None,
            )
        )
        if not updated:
            return None
        self._delete_artifact_file(key)
        logger.info(f"Model {key} is now {Status.BUSY}")
        return self._current_state(key)
    
    def _current_state(self, key: int) -> Optional[TrainState]:
        model = self.get(key)
        return model.train_state if model is not None else None
    
    # artifacts
    
    def _delete_artifact_file(self, key: int) -> None:
        path = os.path.join(self._workspace(key), MODEL_FILENAME)
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.error(f"Failed to delete artifact of model {key}: {e}")
    
    def delete_artifact(self, key: int) -> None:
        """Forget and delete the trained artifact without touching the status."""
        MatcherModel.objects.filter(pk=key).update(model_path=None, artifact_hash=None)
        self._delete_artifact_file(key)
    
    def write_model(self, key: int, artifact: ClassifierArtifact) -> bool:
        """
        Persist a trained artifact into the model's workspace.
        
        Args:
            key: Model id
            artifact: Trained classifier artifact
        
        Returns:
            True if the artifact was written and recorded, False otherwise.
            A failed write leaves no artifact file behind.
        """
        paths = self.identify_paths(key)
        if paths is None:
            return False
        
        model_filepath = os.path.join(paths.workspace_path, MODEL_FILENAME)
        tmp_filepath = model_filepath + '.tmp'
        
        try:
            os.makedirs(paths.workspace_path, exist_ok=True)
            with open(tmp_filepath, 'wb') as f:
                pickle.dump(artifact, f)
            os.replace(tmp_filepath, model_filepath)
            
            file_hash = self._compute_hash(model_filepath)
            updated = MatcherModel.objects.filter(pk=key).update(
                model_path=model_filepath,
                artifact_hash=file_hash,
            )
            if not updated:
                raise ModelRegistryError(f"Model {key} disappeared while saving its artifact")
        except Exception as e:
            logger.error(f"Failed to write trained model for {key}: {e}")
            for path in (tmp_filepath, model_filepath):
                if os.path.exists(path):
                    os.remove(path)
            return False
        
        logger.info(f"Saved trained model {key} to {model_filepath}")
        return True
    
    def load_model(self, key: int, verify_hash: bool = True) -> ClassifierArtifact:
        """
        Load the trained artifact of a model.
        
        Args:
            key: Model id
            verify_hash: Whether to verify the file hash
        
        Returns:
            The ClassifierArtifact
        """
        model = self.get(key)
        if model is None:
            raise NotFoundError(f"Model {key} does not exist")
        if not model.model_path or not os.path.exists(model.model_path):
            raise ModelRegistryError(f"Model {key} has no trained artifact")
        
        if verify_hash and model.artifact_hash:
            current_hash = self._compute_hash(model.model_path)
            if current_hash != model.artifact_hash:
                raise ModelRegistryError(
                    f"Artifact hash mismatch for model {key}. "
                    "File may have been modified."
                )
        
        with open(model.model_path, 'rb') as f:
            artifact = pickle.load(f)
        
        logger.info(f"Loaded trained model {key}")
        return artifact
