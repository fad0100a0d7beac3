"""
Tests for the JSON API.
"""
import pytest
import json
import os
import sys
import tempfile
import shutil
from concurrent.futures import Future

# Setup Django
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'matcher_project'))

import django
django.setup()

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import Client

from training_app.services import lifecycle as lifecycle_module

CONTACTS = (
    "email,city\n"
    "ada@example.com,London\n"
    "alan@example.org,Manchester\n"
    "grace@example.net,New York\n"
)

FEATURES = {
    'active_features': ['ratio-alpha-chars', 'prop-entries-with-at-sign'],
    'active_feature_groups': [],
}


class ImmediateExecutor:
    """Runs submitted tasks inline."""
    
    def submit(self, fn, *args, **kwargs):
        future = Future()
        future.set_result(fn(*args, **kwargs))
        return future


@pytest.fixture
def temp_media_dir():
    """Create a temporary media directory."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def client(settings, temp_media_dir, monkeypatch):
    settings.MEDIA_ROOT = temp_media_dir
    monkeypatch.setattr(lifecycle_module, 'get_training_executor', lambda: ImmediateExecutor())
    return Client()


def upload(client, content=CONTACTS, **extra):
    data = {'file': SimpleUploadedFile('contacts.csv', content.encode()), **extra}
    response = client.post('/datasets/api/', data)
    assert response.status_code == 201
    return response.json()


def put_json(client, path, payload):
    return client.put(path, data=json.dumps(payload), content_type='application/json')


@pytest.mark.django_db
class TestDatasetApi:
    """Tests for the dataset endpoints."""
    
    def test_upload_and_list(self, client):
        created = upload(client, description='contacts', type_map=json.dumps({'city': 'STRING'}))
        
        assert created['description'] == 'contacts'
        assert [c['name'] for c in created['columns']] == ['email', 'city']
        
        listed = client.get('/datasets/api/').json()['datasets']
        assert [d['id'] for d in listed] == [created['id']]
    
    def test_get_with_sample_size(self, client):
        created = upload(client)
        
        data = client.get(f"/datasets/api/{created['id']}/?sample_size=4").json()
        assert [len(c['sample']) for c in data['columns']] == [4, 4]
    
    def test_bad_sample_size(self, client):
        created = upload(client)
        
        response = client.get(f"/datasets/api/{created['id']}/?sample_size=many")
        assert response.status_code == 400
    
    def test_upload_without_file(self, client):
        response = client.post('/datasets/api/', {'description': 'nothing'})
        
        assert response.status_code == 400
        assert 'error' in response.json()
    
    def test_update(self, client):
        created = upload(client)
        
        response = put_json(client, f"/datasets/api/{created['id']}/", {'description': 'renamed'})
        assert response.status_code == 200
        assert response.json()['description'] == 'renamed'
    
    def test_missing_dataset(self, client):
        assert client.get('/datasets/api/404/').status_code == 404
        assert client.delete('/datasets/api/404/').status_code == 404
    
    def test_method_not_allowed(self, client):
        assert client.patch('/datasets/api/').status_code == 405


@pytest.mark.django_db
class TestModelApi:
    """Tests for the model, training and prediction endpoints."""
    
    def create_model(self, client, dataset):
        email, city = dataset['columns']
        payload = {
            'classes': ['email', 'city'],
            'features': FEATURES,
            'label_data': {str(email['id']): 'email', str(city['id']): 'city'},
        }
        response = client.post('/models/api/', data=json.dumps(payload), content_type='application/json')
        assert response.status_code == 201
        return response.json()
    
    def test_create_and_get(self, client):
        model = self.create_model(client, upload(client))
        
        fetched = client.get(f"/models/api/{model['id']}/").json()
        assert fetched['classes'] == ['email', 'city']
        assert fetched['state']['status'] == 'UNTRAINED'
        assert client.get('/models/api/').json()['models'][0]['id'] == model['id']
    
    def test_create_invalid(self, client):
        response = client.post(
            '/models/api/',
            data=json.dumps({'model_type': 'svm'}),
            content_type='application/json',
        )
        assert response.status_code == 400
    
    def test_create_malformed_json(self, client):
        response = client.post('/models/api/', data='{', content_type='application/json')
        assert response.status_code == 400
    
    def test_train_then_predict(self, client):
        dataset = upload(client)
        model = self.create_model(client, dataset)
        
        response = client.post(f"/training/api/train/{model['id']}/")
        assert response.status_code == 202
        assert response.json()['status'] == 'BUSY'
        assert client.get(f"/models/api/{model['id']}/").json()['state']['status'] == 'COMPLETE'
        
        response = client.post(f"/inference/api/predict/{model['id']}/{dataset['id']}/")
        assert response.status_code == 200
        predictions = response.json()['predictions']
        assert len(predictions) == 2
        for column in predictions.values():
            assert set(column['scores']) == {'email', 'city'}
        
        runs = client.get(f"/training/api/runs/{model['id']}/").json()['runs']
        assert [r['status'] for r in runs] == ['completed']
        logs = client.get(f"/inference/api/logs/{model['id']}/").json()['logs']
        assert len(logs) == 1
    
    def test_predict_untrained(self, client):
        dataset = upload(client)
        model = self.create_model(client, dataset)
        
        response = client.post(f"/inference/api/predict/{model['id']}/{dataset['id']}/")
        assert response.status_code == 400
        assert 'not trained' in response.json()['error']
    
    def test_train_missing_model(self, client):
        assert client.post('/training/api/train/999/').status_code == 404
    
    def test_train_requires_post(self, client):
        assert client.get('/training/api/train/1/').status_code == 405
    
    def test_update_and_delete(self, client):
        model = self.create_model(client, upload(client))
        
        response = put_json(client, f"/models/api/{model['id']}/", {'label_data': {}})
        assert response.status_code == 200
        assert response.json()['label_data'] == {}
        
        assert client.delete(f"/models/api/{model['id']}/").json() == {'deleted': model['id']}
        assert client.get(f"/models/api/{model['id']}/").status_code == 404
    
    def test_delete_dataset_strips_labels(self, client):
        dataset = upload(client)
        model = self.create_model(client, dataset)
        
        response = client.delete(f"/datasets/api/{dataset['id']}/")
        assert response.status_code == 200
        
        fetched = client.get(f"/models/api/{model['id']}/").json()
        assert fetched['label_data'] == {}
        assert fetched['ref_datasets'] == []
