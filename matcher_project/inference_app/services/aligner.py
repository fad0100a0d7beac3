"""
Mapping of estimator output columns onto a model's canonical classes.
"""
from typing import List, Optional, Sequence, Tuple

import numpy as np


class ClassAligner:
    """
    Reorders native probability vectors into canonical class order.
    
    An estimator only knows the labels it saw during training, in its own
    order. The canonical order is the model's ``classes`` list; classes
    the estimator never saw score 0.0. The index mapping is computed once
    per prediction request.
    """
    
    def __init__(self, classes: Sequence[str], native_labels: Sequence[str]):
        self.classes = list(classes)
        self.native_labels = list(native_labels)
        
        positions = {}
        for i, label in enumerate(self.native_labels):
            positions.setdefault(label, i)
        self.mapping = np.array([positions.get(c, -1) for c in self.classes], dtype=int)
    
    def align(self, probabilities: Sequence[float]) -> List[float]:
        """Canonical score vector for one instance."""
        return self.align_batch(np.asarray([probabilities], dtype=float))[0].tolist()
    
    def align_batch(self, matrix: np.ndarray) -> np.ndarray:
        """
        Canonical scores for every row of a native probability matrix.
        
        Returns:
            Array of shape (n_rows, len(classes))
        """
        matrix = np.asarray(matrix, dtype=float)
        aligned = np.zeros((matrix.shape[0], len(self.classes)), dtype=float)
        present = self.mapping >= 0
        if present.any():
            aligned[:, present] = matrix[:, self.mapping[present]]
        return aligned
    
    def best(self, scores: Sequence[float]) -> Tuple[Optional[str], float]:
        """Top class and its score; ties go to the earliest class."""
        if not self.classes:
            return None, 0.0
        index = int(np.argmax(scores))
        return self.classes[index], float(scores[index])
