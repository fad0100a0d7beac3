from django.db import models


class TrainingRun(models.Model):
    """
    Record of one background training run of a matcher model.
    
    Attributes:
        model_id: Id of the trained MatcherModel (kept after the model is deleted)
        model_type: Classifier family used for the run
        status: Current run status
        error_message: Error message if failed
        metrics: JSON training metrics of the produced artifact
        started_at: Run start time
        completed_at: Run completion time
    """
    
    STATUS_CHOICES = [
        ('running', 'Running'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
        ('discarded', 'Discarded'),
    ]
    
    model_id = models.IntegerField(db_index=True)
    model_type = models.CharField(max_length=30)
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default='running'
    )
    error_message = models.TextField(blank=True, null=True)
    metrics = models.JSONField(default=dict)
    started_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(blank=True, null=True)
    
    class Meta:
        ordering = ['-started_at', '-id']
        verbose_name = 'Training Run'
        verbose_name_plural = 'Training Runs'
    
    def __str__(self):
        return f"Run {self.id}: model {self.model_id} ({self.status})"
    
    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'model_id': self.model_id,
            'model_type': self.model_type,
            'status': self.status,
            'error_message': self.error_message,
            'metrics': self.metrics,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
