from django.db import models


class PredictionLog(models.Model):
    """
    Model representing one prediction request.
    
    Attributes:
        model_id: Id of the model used
        dataset_id: Id of the dataset the columns came from
        predictions: JSON column id -> predicted label
        report_path: Path of the CSV report, if one was written
        timestamp: Time of prediction
    """
    
    model_id = models.IntegerField(db_index=True)
    dataset_id = models.IntegerField()
    predictions = models.JSONField(default=dict)
    report_path = models.CharField(max_length=500, blank=True, null=True)
    timestamp = models.DateTimeField(auto_now_add=True)
    
    class Meta:
        ordering = ['-timestamp', '-id']
        verbose_name = 'Prediction Log'
        verbose_name_plural = 'Prediction Logs'
    
    def __str__(self):
        return f"Prediction with model {self.model_id} on dataset {self.dataset_id} at {self.timestamp}"
    
    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'model_id': self.model_id,
            'dataset_id': self.dataset_id,
            'predictions': self.predictions,
            'report_path': self.report_path,
            'timestamp': self.timestamp.isoformat(),
        }
