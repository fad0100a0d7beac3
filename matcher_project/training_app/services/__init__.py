"""
Training services.
"""
from .classifiers import TrainingSettings, TorchMLPClassifier, fit_semantic_classifier, infer, native_label_order
from .resampling import resample
from .trainer import ModelTrainer

__all__ = [
    'TrainingSettings',
    'TorchMLPClassifier',
    'fit_semantic_classifier',
    'infer',
    'native_label_order',
    'resample',
    'ModelTrainer',
]
