"""
Inference services.
"""
from .aligner import ClassAligner
from .predictor import ColumnPrediction, DataSetPrediction, ModelPredictor

__all__ = ['ClassAligner', 'ColumnPrediction', 'DataSetPrediction', 'ModelPredictor']
