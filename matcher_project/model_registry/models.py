from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from django.db import models
from django.utils import timezone


class Status(models.TextChoices):
    UNTRAINED = 'UNTRAINED', 'Untrained'
    BUSY = 'BUSY', 'Busy'
    COMPLETE = 'COMPLETE', 'Complete'
    ERROR = 'ERROR', 'Error'


class ModelType(models.TextChoices):
    RANDOM_FOREST = 'RANDOM_FOREST', 'Random Forest'
    NEURAL_NETWORK = 'NEURAL_NETWORK', 'PyTorch MLP'


class SamplingStrategy(models.TextChoices):
    NO_RESAMPLING = 'NO_RESAMPLING', 'No resampling'
    RESAMPLE_TO_MEAN = 'RESAMPLE_TO_MEAN', 'Resample to mean'
    UPSAMPLE_TO_MAX = 'UPSAMPLE_TO_MAX', 'Upsample to max'
    UPSAMPLE_TO_MEAN = 'UPSAMPLE_TO_MEAN', 'Upsample to mean'
    BAGGING = 'BAGGING', 'Bagging'
    BAGGING_TO_MAX = 'BAGGING_TO_MAX', 'Bagging to max'
    BAGGING_TO_MEAN = 'BAGGING_TO_MEAN', 'Bagging to mean'


@dataclass(frozen=True)
class TrainState:
    """Training status of a model and when it last changed."""
    
    status: str
    message: str
    date_created: datetime
    date_changed: datetime
    
    def to_dict(self) -> Dict[str, str]:
        return {
            'status': self.status,
            'message': self.message,
            'date_created': self.date_created.isoformat(),
            'date_changed': self.date_changed.isoformat(),
        }


class MatcherModel(models.Model):
    """
    A semantic type classifier configuration and its training state.
    
    Attributes:
        description: Free text description
        model_type: Classifier family used for training
        classes: JSON list of class labels; this order is the output
            order of every prediction made by the model
        features: JSON feature configuration (active features, active
            feature groups, feature extractor parameters)
        cost_matrix: JSON square matrix over ``classes``; empty for uniform cost
        resampling_strategy: How training instances are rebalanced
        label_data: JSON map of column id -> class label
        ref_datasets: JSON list of dataset ids referenced by ``label_data``
        model_path: Path to the trained artifact, if any
        artifact_hash: SHA256 hash of the artifact file
        status: Training status
        status_message: Human readable detail for the status
        state_date_created: When the training state was first created
        state_date_changed: Last status transition; training completion
            time for COMPLETE models
        num_bags: Number of bags for the bagging strategies
        bag_size: Values per bag for the bagging strategies
    """
    
    description = models.TextField(default='unknown')
    model_type = models.CharField(
        max_length=30,
        choices=ModelType.choices,
        default=ModelType.RANDOM_FOREST
    )
    classes = models.JSONField(default=list)
    features = models.JSONField(default=dict)
    cost_matrix = models.JSONField(default=list)
    resampling_strategy = models.CharField(
        max_length=30,
        choices=SamplingStrategy.choices,
        default=SamplingStrategy.RESAMPLE_TO_MEAN
    )
    label_data = models.JSONField(default=dict)
    ref_datasets = models.JSONField(default=list)
    model_path = models.CharField(max_length=500, blank=True, null=True)
    artifact_hash = models.CharField(max_length=64, blank=True, null=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.UNTRAINED
    )
    status_message = models.TextField(blank=True, default='')
    state_date_created = models.DateTimeField(default=timezone.now)
    state_date_changed = models.DateTimeField(default=timezone.now)
    date_created = models.DateTimeField(default=timezone.now)
    date_modified = models.DateTimeField(default=timezone.now)
    num_bags = models.IntegerField(blank=True, null=True)
    bag_size = models.IntegerField(blank=True, null=True)
    
    class Meta:
        ordering = ['id']
        verbose_name = 'Matcher Model'
        verbose_name_plural = 'Matcher Models'
    
    def __str__(self):
        return f"{self.model_type} model #{self.id} ({self.status})"
    
    @property
    def train_state(self) -> TrainState:
        return TrainState(
            status=self.status,
            message=self.status_message,
            date_created=self.state_date_created,
            date_changed=self.state_date_changed,
        )
    
    @property
    def labels(self) -> Dict[int, str]:
        """``label_data`` with integer column ids (JSON keys are strings)."""
        return {int(k): v for k, v in self.label_data.items()}
    
    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'description': self.description,
            'model_type': self.model_type,
            'classes': self.classes,
            'features': self.features,
            'cost_matrix': self.cost_matrix,
            'resampling_strategy': self.resampling_strategy,
            'label_data': self.label_data,
            'ref_datasets': self.ref_datasets,
            'model_path': self.model_path,
            'state': self.train_state.to_dict(),
            'date_created': self.date_created.isoformat(),
            'date_modified': self.date_modified.isoformat(),
            'num_bags': self.num_bags,
            'bag_size': self.bag_size,
        }
