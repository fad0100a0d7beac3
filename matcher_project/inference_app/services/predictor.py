"""
Predictor service for matcher models.
"""
import os
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from django.conf import settings

from dataset_app.services import DatasetStorage
from inference_app.models import PredictionLog
from inference_app.services.aligner import ClassAligner
from model_registry.services import ModelStorage
from shared.features import FeatureVectorBuilder
from shared.utils import Timer, compute_session, get_logger
from shared.utils.exceptions import BadRequestError, InferenceError, MatcherException, NotFoundError
from training_app.services.classifiers import infer, native_label_order

logger = get_logger(__name__)

REPORTS_DIRNAME = 'predictions'


class ColumnPrediction:
    """Predicted class of one column with its full score and feature maps."""
    
    def __init__(
        self,
        column_id: str,
        column_name: str,
        label: Optional[str],
        confidence: float,
        scores: Dict[str, float],
        features: Dict[str, float]
    ):
        self.column_id = column_id
        self.column_name = column_name
        self.label = label
        self.confidence = confidence
        self.scores = scores
        self.features = features
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'column_id': self.column_id,
            'column_name': self.column_name,
            'label': self.label,
            'confidence': self.confidence,
            'scores': self.scores,
            'features': self.features,
        }


class DataSetPrediction:
    """Predictions for every column of one dataset, keyed by column id."""
    
    def __init__(
        self,
        model_id: int,
        dataset_id: int,
        columns: Sequence[ColumnPrediction],
        report_path: Optional[str] = None
    ):
        self.model_id = model_id
        self.dataset_id = dataset_id
        self.columns = {c.column_id: c for c in columns}
        self.report_path = report_path
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_id': self.model_id,
            'dataset_id': self.dataset_id,
            'predictions': {key: c.to_dict() for key, c in self.columns.items()},
            'report_path': self.report_path,
        }


class ModelPredictor:
    """
    Service for predicting column classes with a trained model.
    
    The caller is responsible for checking the model is trained; this
    service never changes its training state.
    """
    
    def __init__(
        self,
        models: Optional[ModelStorage] = None,
        datasets: Optional[DatasetStorage] = None,
        write_reports: Optional[bool] = None
    ):
        self.models = models or ModelStorage()
        self.datasets = datasets or DatasetStorage()
        if write_reports is None:
            write_reports = getattr(settings, 'MATCHER_PREDICTION_REPORTS', True)
        self.write_reports = write_reports
    
    def _write_report(
        self,
        model_id: int,
        dataset_id: int,
        classes: List[str],
        feature_names: List[str],
        columns: List[ColumnPrediction]
    ) -> Optional[str]:
        """Write ``id,label,confidence,<classes>,<features>`` rows as CSV."""
        paths = self.models.identify_paths(model_id)
        if paths is None:
            return None
        
        rows = []
        for c in columns:
            row = {'id': c.column_id, 'label': c.label, 'confidence': c.confidence}
            row.update({f"score:{cls}": c.scores[cls] for cls in classes})
            row.update(c.features)
            rows.append(row)
        columns_order = (
            ['id', 'label', 'confidence']
            + [f"score:{cls}" for cls in classes]
            + feature_names
        )
        
        report_dir = os.path.join(paths.workspace_path, REPORTS_DIRNAME)
        report_path = os.path.join(report_dir, f"dataset_{dataset_id}.csv")
        try:
            os.makedirs(report_dir, exist_ok=True)
            pd.DataFrame(rows, columns=columns_order).to_csv(report_path, index=False)
        except OSError as e:
            logger.error(f"Failed to write prediction report {report_path}: {e}")
            return None
        
        logger.info(f"Wrote prediction report to {report_path}")
        return report_path
    
    def predict(self, model_id: int, dataset_id: int) -> DataSetPrediction:
        """
        Predict the class of every column of a dataset.
        
        Args:
            model_id: Trained model to use
            dataset_id: Dataset whose columns are classified
        
        Returns:
            DataSetPrediction with one ColumnPrediction per column
        
        Raises:
            NotFoundError: If the dataset does not exist
            BadRequestError: If the dataset has no columns
        """
        if self.datasets.get(dataset_id) is None:
            raise NotFoundError(f"Dataset {dataset_id} does not exist")
        
        attributes = self.datasets.load_attributes(dataset_id)
        if not attributes:
            raise BadRequestError(f"Dataset {dataset_id} has no columns")
        
        artifact = self.models.load_model(model_id)
        builder = FeatureVectorBuilder(artifact.feature_extractors)
        
        try:
            with compute_session(f"predict model {model_id}"), Timer(f"prediction for dataset {dataset_id}"):
                X = builder.build(attributes)
                raw = infer(artifact.estimator, X)
        except MatcherException:
            raise
        except Exception as e:
            logger.error(f"Inference with model {model_id} failed: {e}")
            raise InferenceError(f"Prediction failed: {e}") from e
        
        aligner = ClassAligner(artifact.classes, native_label_order(artifact.estimator))
        aligned = aligner.align_batch(raw)
        
        columns = []
        for attribute, scores, vector in zip(attributes, aligned, X):
            label, confidence = aligner.best(scores)
            columns.append(ColumnPrediction(
                column_id=attribute.id,
                column_name=attribute.name,
                label=label,
                confidence=confidence,
                scores=dict(zip(aligner.classes, scores.tolist())),
                features=dict(zip(builder.feature_names, np.asarray(vector).tolist())),
            ))
        
        report_path = None
        if self.write_reports:
            report_path = self._write_report(
                model_id, dataset_id, aligner.classes, builder.feature_names, columns
            )
        
        PredictionLog.objects.create(
            model_id=model_id,
            dataset_id=dataset_id,
            predictions={c.column_id: c.label for c in columns},
            report_path=report_path,
        )
        
        logger.info(f"Predicted {len(columns)} columns of dataset {dataset_id} with model {model_id}")
        return DataSetPrediction(model_id, dataset_id, columns, report_path)
