"""
Tests for the dataset app: sampling and dataset storage.
"""
import pytest
import math
import numpy as np
import pandas as pd
import os
import sys
import tempfile
import shutil
from io import BytesIO

# Setup Django
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'matcher_project'))

import django
django.setup()

from django.core.files.uploadedfile import SimpleUploadedFile
from dataset_app.models import Column, Dataset, LogicalType
from dataset_app.services import DatasetStorage, INT_MIN_SENTINEL, retype_data, sample_column, sample_indices
from shared.utils.exceptions import BadRequestError, DataError, NotFoundError


@pytest.fixture
def temp_media_dir():
    """Create a temporary media directory."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def storage(temp_media_dir):
    return DatasetStorage(datasets_dir=os.path.join(temp_media_dir, 'datasets'))


@pytest.fixture
def sample_csv_file():
    """Create a sample CSV file for testing."""
    df = pd.DataFrame({
        'id': [1, 2, 3, 4, 5],
        'price': ['10.5', '20.0', 'n/a', '40.0', '50.25'],
        'active': ['true', 'false', 'true', 'true', 'false'],
    })
    
    buffer = BytesIO()
    df.to_csv(buffer, index=False)
    buffer.seek(0)
    
    return SimpleUploadedFile('test.csv', buffer.getvalue(), content_type='text/csv')


class TestSampler:
    """Tests for column sampling and retyping."""
    
    def test_sample_is_deterministic(self):
        values = [str(i) for i in range(100)]
        
        first = sample_column(values, LogicalType.STRING, n=15)
        second = sample_column(values, LogicalType.STRING, n=15)
        assert first == second
        assert len(first) == 15
    
    def test_sample_uses_seeded_draw_order(self):
        values = ['a', 'b', 'c']
        expected = [values[i] for i in np.random.default_rng(0).integers(0, 3, size=5)]
        
        assert sample_column(values, None, n=5) == expected
    
    def test_sample_larger_than_column_draws_with_replacement(self):
        sample = sample_column(['x', 'y'], LogicalType.STRING, n=10)
        
        assert len(sample) == 10
        assert set(sample) <= {'x', 'y'}
    
    def test_empty_column(self):
        assert sample_column([], LogicalType.INTEGER, n=15) == []
        assert sample_indices(0, 15) == []
    
    def test_retype_integer_sentinel(self):
        assert retype_data(['1', 'x', '-3'], LogicalType.INTEGER) == [1, INT_MIN_SENTINEL, -3]
        assert INT_MIN_SENTINEL == -2147483648
    
    def test_retype_float_nan(self):
        values = retype_data(['1.5', 'abc'], LogicalType.FLOAT)
        
        assert values[0] == 1.5
        assert math.isnan(values[1])

    @pytest.mark.parametrize('raw', [' 7 ', '1_000', '7.0', '+', '', '2147483648', '-2147483649'])
    def test_retype_integer_is_strict(self, raw):
        assert retype_data([raw], LogicalType.INTEGER) == [INT_MIN_SENTINEL]

    def test_retype_integer_accepts_sign_and_bounds(self):
        values = retype_data(['+5', '-0', '2147483647', '-2147483648'], LogicalType.INTEGER)

        assert values == [5, 0, 2147483647, -2147483648]

    @pytest.mark.parametrize('raw', ['inf', 'nan', '1_000.5', '1,5', '0x10', 'e3'])
    def test_retype_float_is_strict(self, raw):
        assert math.isnan(retype_data([raw], LogicalType.FLOAT)[0])

    def test_retype_float_accepts_decimal_forms(self):
        values = retype_data([' 2.5 ', '1e3', '.5', '3.', '4f', '-Infinity'], LogicalType.FLOAT)

        assert values == [2.5, 1000.0, 0.5, 3.0, 4.0, float('-inf')]

    def test_retype_boolean_is_case_sensitive(self):
        assert retype_data(['true', 'false'], LogicalType.BOOLEAN) == [True, False]
        with pytest.raises(DataError):
            retype_data(['True'], LogicalType.BOOLEAN)
    
    def test_retype_string_unchanged(self):
        assert retype_data(['a', '1'], LogicalType.STRING) == ['a', '1']
        assert retype_data(['a', '1'], None) == ['a', '1']
    
    def test_logical_type_lookup(self):
        assert LogicalType.lookup('float') == LogicalType.FLOAT
        assert LogicalType.lookup('decimal') is None


@pytest.mark.django_db
class TestDatasetStorage:
    """Tests for DatasetStorage service."""
    
    def test_upload_csv(self, storage, sample_csv_file):
        """Test uploading a CSV file."""
        dataset = storage.upload(sample_csv_file, 'prices', {'price': 'FLOAT', 'active': 'BOOLEAN'})
        
        assert dataset.description == 'prices'
        assert os.path.exists(dataset.file_path)
        columns = list(dataset.columns.all())
        assert [c.name for c in columns] == ['id', 'price', 'active']
        assert [c.logical_type for c in columns] == ['STRING', 'FLOAT', 'BOOLEAN']
        assert all(c.size == 5 for c in columns)
        assert all(len(c.sample) == 15 for c in columns)
    
    def test_samples_line_up_across_columns(self, storage, sample_csv_file):
        dataset = storage.upload(sample_csv_file)
        id_sample, _, active_sample = [c.sample for c in dataset.columns.all()]
        
        active_by_id = {'1': 'true', '2': 'false', '3': 'true', '4': 'true', '5': 'false'}
        assert active_sample == [active_by_id[i] for i in id_sample]
    
    def test_malformed_float_stored_as_null(self, storage, sample_csv_file):
        dataset = storage.upload(sample_csv_file, type_map={'price': 'FLOAT'})
        price = dataset.columns.get(name='price')
        
        raw = [10.5, 20.0, None, 40.0, 50.25]
        expected = [raw[i] for i in np.random.default_rng(0).integers(0, 5, size=15)]
        assert price.sample == expected
    
    def test_bad_boolean_rejects_upload(self, storage, sample_csv_file):
        with pytest.raises(DataError):
            storage.upload(sample_csv_file, type_map={'id': 'BOOLEAN'})
        
        assert Dataset.objects.count() == 0
        assert os.listdir(storage.datasets_dir) == []

    def test_non_utf8_file_rejects_upload(self, storage):
        content = "name,city\nJos\xe9,M\xe1laga\n".encode('latin-1')
        upload = SimpleUploadedFile('latin.csv', content, content_type='text/csv')

        with pytest.raises(BadRequestError) as excinfo:
            storage.upload(upload)

        assert isinstance(excinfo.value, DataError)
        assert excinfo.value.status_code == 400
        assert Dataset.objects.count() == 0
        assert os.listdir(storage.datasets_dir) == []

    def test_missing_file(self, storage):
        with pytest.raises(DataError):
            storage.upload(None)
    
    def test_update_retypes_keeping_column_ids(self, storage, sample_csv_file):
        dataset = storage.upload(sample_csv_file)
        ids = list(dataset.columns.values_list('id', flat=True))
        
        storage.update_dataset(dataset.id, description='typed', type_map={'id': 'INTEGER'})
        
        dataset.refresh_from_db()
        assert dataset.description == 'typed'
        assert list(dataset.columns.values_list('id', flat=True)) == ids
        id_column = dataset.columns.get(name='id')
        assert id_column.logical_type == LogicalType.INTEGER
        assert all(isinstance(v, int) for v in id_column.sample)
    
    def test_update_bumps_date_modified(self, storage, sample_csv_file):
        dataset = storage.upload(sample_csv_file)
        before = dataset.date_modified
        
        updated = storage.update_dataset(dataset.id, description='changed')
        assert updated.date_modified > before
    
    def test_update_missing_dataset(self, storage):
        with pytest.raises(NotFoundError):
            storage.update_dataset(999, description='x')
    
    def test_load_attributes(self, storage, sample_csv_file):
        dataset = storage.upload(sample_csv_file)
        
        attributes = storage.load_attributes(dataset.id)
        column_ids = [str(pk) for pk in dataset.columns.values_list('id', flat=True)]
        assert [a.id for a in attributes] == column_ids
        assert attributes[1].values == ['10.5', '20.0', 'n/a', '40.0', '50.25']
    
    def test_column_map(self, storage, sample_csv_file):
        dataset = storage.upload(sample_csv_file)
        
        column_map = storage.column_map()
        assert len(column_map) == 3
        assert all(ref.dataset_id == dataset.id for ref in column_map.values())
    
    def test_describe_with_sample_size(self, storage, sample_csv_file):
        dataset = storage.upload(sample_csv_file)
        
        data = storage.describe(dataset.id, sample_size=3)
        assert [len(c['sample']) for c in data['columns']] == [3, 3, 3]
    
    def test_key_value_operations(self, storage):
        dataset = Dataset(filename='manual.csv', file_path='')
        key = storage.add(dataset)
        
        assert storage.keys() == [key]
        dataset.description = 'edited'
        assert storage.update(key, dataset) == key
        assert storage.get(key).description == 'edited'
        assert storage.update(key + 1, dataset) is None
        assert [d.id for d in storage.list_values()] == [key]
    
    def test_remove_dataset(self, storage, sample_csv_file):
        """Test deleting a dataset."""
        dataset = storage.upload(sample_csv_file)
        dataset_dir = os.path.dirname(dataset.file_path)
        
        assert storage.remove(dataset.id) == dataset.id
        assert not Dataset.objects.filter(pk=dataset.id).exists()
        assert Column.objects.count() == 0
        assert not os.path.exists(dataset_dir)
        assert storage.remove(dataset.id) is None
