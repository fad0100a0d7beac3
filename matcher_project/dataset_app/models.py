from django.db import models


class LogicalType(models.TextChoices):
    STRING = 'STRING', 'String'
    INTEGER = 'INTEGER', 'Integer'
    FLOAT = 'FLOAT', 'Float'
    BOOLEAN = 'BOOLEAN', 'Boolean'
    
    @classmethod
    def lookup(cls, value):
        """Return the member named ``value`` (case-insensitive), or None."""
        if value is None:
            return None
        try:
            return cls(str(value).upper())
        except ValueError:
            return None


class Dataset(models.Model):
    """
    Model representing an uploaded CSV dataset.
    
    Attributes:
        filename: Original name of the uploaded file
        file_path: Path to the stored CSV file
        type_map: JSON map of column header -> logical type
        description: Free text description
        date_created: Timestamp of creation
        date_modified: Timestamp of last update; trained models go stale
            when this moves past their training date
    """
    
    filename = models.CharField(max_length=255)
    file_path = models.CharField(max_length=500)
    type_map = models.JSONField(default=dict)
    description = models.TextField(default='unknown')
    date_created = models.DateTimeField(auto_now_add=True)
    date_modified = models.DateTimeField(auto_now=True)
    
    class Meta:
        ordering = ['id']
        verbose_name = 'Dataset'
        verbose_name_plural = 'Datasets'
    
    def __str__(self):
        return f"{self.filename} (#{self.id})"
    
    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'filename': self.filename,
            'path': self.file_path,
            'type_map': self.type_map,
            'description': self.description,
            'columns': [c.to_dict() for c in self.columns.all()],
            'date_created': self.date_created.isoformat(),
            'date_modified': self.date_modified.isoformat(),
        }


class Column(models.Model):
    """
    A column of a stored dataset with a small typed sample of its values.
    """
    
    dataset = models.ForeignKey(
        Dataset,
        on_delete=models.CASCADE,
        related_name='columns'
    )
    index = models.IntegerField()
    name = models.CharField(max_length=255)
    size = models.IntegerField(default=0)
    sample = models.JSONField(default=list)
    logical_type = models.CharField(
        max_length=20,
        choices=LogicalType.choices,
        default=LogicalType.STRING
    )
    
    class Meta:
        ordering = ['dataset_id', 'index']
        unique_together = [('dataset', 'index')]
    
    def __str__(self):
        return f"{self.name} [{self.logical_type}] of dataset {self.dataset_id}"
    
    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'index': self.index,
            'dataset_id': self.dataset_id,
            'name': self.name,
            'size': self.size,
            'sample': self.sample,
            'logical_type': self.logical_type,
        }
