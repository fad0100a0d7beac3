"""
Dataset storage service.
"""
import math
import os
import shutil
from typing import Any, Dict, List, NamedTuple, Optional

import pandas as pd
from django.conf import settings
from django.core.files.uploadedfile import UploadedFile
from django.db import transaction

from dataset_app.models import Column, Dataset, LogicalType
from dataset_app.services.sampler import DEFAULT_SAMPLE_SIZE, sample_column, sample_indices
from shared.features import Attribute
from shared.utils import get_logger
from shared.utils.exceptions import DataError, InternalError, NotFoundError

logger = get_logger(__name__)


class ColumnRef(NamedTuple):
    dataset_id: int
    column: Column


def _json_safe(values: List[Any]) -> List[Any]:
    # JSON has no NaN; malformed floats are stored as null
    return [None if isinstance(v, float) and math.isnan(v) else v for v in values]


class DatasetStorage:
    """
    Service for storing datasets and their columns.
    
    Dataset files live under ``<MEDIA_ROOT>/datasets/<id>/``; metadata
    and column samples live in the database.
    """
    
    def __init__(self, datasets_dir: Optional[str] = None):
        """
        Initialize the storage.
        
        Args:
            datasets_dir: Directory to store dataset files
        """
        self.datasets_dir = datasets_dir or os.path.join(
            settings.MEDIA_ROOT, 'datasets'
        )
        os.makedirs(self.datasets_dir, exist_ok=True)
    
    @property
    def sample_size(self) -> int:
        return getattr(settings, 'MATCHER_DEFAULT_SAMPLE_SIZE', DEFAULT_SAMPLE_SIZE)
    
    # key-value operations
    
    def get(self, key: int) -> Optional[Dataset]:
        return Dataset.objects.filter(pk=key).first()
    
    def add(self, dataset: Dataset) -> int:
        dataset.save()
        return dataset.id
    
    def update(self, key: int, dataset: Dataset) -> Optional[int]:
        if not Dataset.objects.filter(pk=key).exists():
            return None
        dataset.pk = key
        dataset.save()
        return key
    
    def remove(self, key: int) -> Optional[int]:
        """Delete the dataset record, its columns and its file."""
        dataset = self.get(key)
        if dataset is None:
            return None
        
        dataset.delete()
        
        dataset_dir = self._dataset_dir(key)
        try:
            if os.path.exists(dataset_dir):
                shutil.rmtree(dataset_dir)
        except OSError as e:
            logger.error(f"Could not delete files of dataset {key}: {e}")
        
        logger.info(f"Deleted dataset {key}")
        return key
    
    def keys(self) -> List[int]:
        return list(Dataset.objects.values_list('id', flat=True))
    
    def list_values(self) -> List[Dataset]:
        return list(Dataset.objects.all())
    
    def column_map(self) -> Dict[int, ColumnRef]:
        """Map of every stored column id to its dataset id and column."""
        return {
            column.id: ColumnRef(column.dataset_id, column)
            for column in Column.objects.all()
        }
    
    # files and columns
    
    def _dataset_dir(self, key: int) -> str:
        return os.path.join(self.datasets_dir, str(key))
    
    def _write_file(self, key: int, file: UploadedFile) -> str:
        dataset_dir = self._dataset_dir(key)
        os.makedirs(dataset_dir, exist_ok=True)
        filename = os.path.basename(file.name or 'data.csv')
        filepath = os.path.join(dataset_dir, filename)
        with open(filepath, 'wb') as f:
            for chunk in file.chunks():
                f.write(chunk)
        return filepath
    
    @staticmethod
    def read_frame(file_path: str) -> pd.DataFrame:
        """Read a CSV file keeping every cell as the raw string."""
        try:
            return pd.read_csv(file_path, dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except UnicodeDecodeError as e:
            raise DataError(f"CSV file {os.path.basename(file_path)} is not valid UTF-8: {e}")
        except (OSError, ValueError) as e:
            raise DataError(f"Failed to read CSV file {file_path}: {e}")
    
    def get_columns(
        self,
        dataset: Dataset,
        type_map: Optional[Dict[str, str]] = None,
        n: Optional[int] = None
    ) -> List[Column]:
        """
        Build (unsaved) column objects with fresh samples.
        
        Args:
            dataset: Parent dataset, its file is read from disk
            type_map: Column header -> logical type, defaults to the dataset's
            n: Sample size
        
        Returns:
            List of Column instances in file order
        """
        type_map = dataset.type_map if type_map is None else type_map
        n = self.sample_size if n is None else n
        
        df = self.read_frame(dataset.file_path)
        indices = sample_indices(len(df), n)
        
        columns = []
        for i, header in enumerate(df.columns):
            values = df[header].tolist()
            logical_type = LogicalType.lookup(type_map.get(header)) or LogicalType.STRING
            columns.append(Column(
                dataset=dataset,
                index=i,
                name=str(header),
                size=len(values),
                sample=_json_safe(sample_column(values, logical_type, n, indices)),
                logical_type=logical_type,
            ))
        return columns
    
    def upload(
        self,
        file: UploadedFile,
        description: Optional[str] = None,
        type_map: Optional[Dict[str, str]] = None
    ) -> Dataset:
        """
        Store an uploaded CSV file as a new dataset.
        
        Args:
            file: Uploaded file object
            description: Optional description
            type_map: Optional column header -> logical type map
        
        Returns:
            Created Dataset instance
        """
        if file is None:
            raise DataError("Failed to read file request part")
        
        dataset = None
        try:
            with transaction.atomic():
                dataset = Dataset.objects.create(
                    filename=os.path.basename(file.name or 'data.csv'),
                    file_path='',
                    type_map=type_map or {},
                    description=description or 'unknown',
                )
                dataset.file_path = self._write_file(dataset.id, file)
                dataset.save()
                Column.objects.bulk_create(self.get_columns(dataset))
        except DataError:
            self._discard_files(dataset)
            raise
        except Exception as e:
            self._discard_files(dataset)
            logger.error(f"Failed to create dataset: {e}")
            raise InternalError(f"Failed to create resource: {e}") from e
        
        logger.info(f"Uploaded dataset {dataset.id} ({dataset.filename})")
        return dataset
    
    def _discard_files(self, dataset: Optional[Dataset]) -> None:
        if dataset is not None and dataset.id is not None:
            shutil.rmtree(self._dataset_dir(dataset.id), ignore_errors=True)
    
    def update_dataset(
        self,
        key: int,
        description: Optional[str] = None,
        type_map: Optional[Dict[str, str]] = None
    ) -> Dataset:
        """
        Update a dataset's description and/or type map.
        
        A new type map re-types the column samples in place; column ids
        are kept so model labels stay valid.
        """
        dataset = self.get(key)
        if dataset is None:
            raise NotFoundError(f"Dataset {key} does not exist")
        
        with transaction.atomic():
            if description is not None:
                dataset.description = description
            if type_map is not None:
                dataset.type_map = type_map
                fresh = {c.index: c for c in self.get_columns(dataset, type_map)}
                for column in dataset.columns.all():
                    new = fresh.get(column.index)
                    if new is None:
                        continue
                    column.sample = new.sample
                    column.logical_type = new.logical_type
                    column.save(update_fields=['sample', 'logical_type'])
            dataset.save()
        
        logger.info(f"Updated dataset {key}")
        return dataset
    
    def load_attributes(self, key: int) -> List[Attribute]:
        """
        Full column values of a dataset as feature-extraction attributes.
        
        Raises:
            NotFoundError: If the dataset does not exist
        """
        dataset = self.get(key)
        if dataset is None:
            raise NotFoundError(f"Dataset {key} does not exist")
        
        df = self.read_frame(dataset.file_path)
        headers = list(df.columns)
        attributes = []
        for column in dataset.columns.all():
            if column.index >= len(headers):
                continue
            values = df[headers[column.index]].tolist()
            attributes.append(Attribute(id=str(column.id), name=column.name, values=values))
        return attributes
    
    def describe(self, key: int, sample_size: Optional[int] = None) -> Dict[str, Any]:
        """Dataset as a dict, optionally re-sampled with a different size."""
        dataset = self.get(key)
        if dataset is None:
            raise NotFoundError(f"Dataset {key} does not exist")
        data = dataset.to_dict()
        if sample_size is not None:
            stored = {c.index: c.id for c in dataset.columns.all()}
            columns = self.get_columns(dataset, n=sample_size)
            for column in columns:
                column.id = stored.get(column.index)
            data['columns'] = [c.to_dict() for c in columns]
        return data
