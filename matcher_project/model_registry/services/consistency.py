"""
Staleness check for trained models.
"""
import os
from typing import Optional

from django.db import DatabaseError

from dataset_app.services import DatasetStorage
from model_registry.models import Status
from model_registry.services.registry import ModelStorage
from shared.utils import get_logger

logger = get_logger(__name__)


class ConsistencyChecker:
    """
    Decides whether a model's trained artifact can still be served.
    
    A model is consistent when its status is COMPLETE, its artifact file
    exists, and every dataset its labels refer to still exists and was
    last modified strictly before training completed. Nothing is cached:
    every call re-reads the stores.
    """
    
    def __init__(
        self,
        models: Optional[ModelStorage] = None,
        datasets: Optional[DatasetStorage] = None
    ):
        self.models = models or ModelStorage()
        self.datasets = datasets or DatasetStorage()
    
    def is_consistent(self, model_id: int) -> bool:
        logger.info(f"Checking consistency of model {model_id}")
        try:
            return self._check(model_id)
        except (DatabaseError, OSError) as e:
            logger.error(f"Consistency check of model {model_id} failed: {e}")
            return False
    
    def _check(self, model_id: int) -> bool:
        model = self.models.get(model_id)
        if model is None:
            return False
        
        if model.status != Status.COMPLETE:
            logger.debug(f"Model {model_id} is {model.status}")
            return False
        
        if not model.model_path or not os.path.exists(model.model_path):
            logger.warning(f"Model {model_id} is complete but its artifact is missing")
            return False
        
        trained_at = model.state_date_changed
        for dataset_id in model.ref_datasets:
            dataset = self.datasets.get(dataset_id)
            if dataset is None:
                logger.info(f"Model {model_id} refers to missing dataset {dataset_id}")
                return False
            if not dataset.date_modified < trained_at:
                logger.info(f"Dataset {dataset_id} changed after model {model_id} was trained")
                return False
        
        logger.info(f"Model {model_id} is consistent")
        return True
