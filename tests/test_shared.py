"""
Tests for the shared module.
"""
import pytest
import numpy as np
import os
import sys
import time

# Setup Django
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'matcher_project'))

import django
django.setup()

from shared.features import (
    Attribute,
    DEFAULT_FEATURES_CONFIG,
    FeatureSettings,
    FeatureVectorBuilder,
    GroupFeatureExtractor,
    SingleFeatureExtractor,
)
from shared.features.extractors import (
    CHAR_DIST_ALPHABET,
    KnnHeaderFeatureExtractor,
    MinEditDistanceFeatureExtractor,
    edit_distance,
    infer_column_type,
    normalise_header,
    prop_missing_vals,
    prop_unique_vals,
)
from shared.utils import TrainingExecutor, compute_session
from shared.utils.timer import Timer
from shared.utils.exceptions import (
    BadRequestError,
    DataError,
    FeatureExtractionError,
    InferenceError,
    InternalError,
    NotFoundError,
    TrainingError,
    ValidationError,
)


class TestExtractors:
    """Tests for single and group feature extractors."""
    
    def test_unique_and_missing_proportions(self):
        attr = Attribute(id='1', name='city', values=['Paris', 'Paris', '', 'Rome'])
        
        assert prop_missing_vals(attr) == 0.25
        assert prop_unique_vals(attr) == pytest.approx(2 / 3)
    
    def test_infer_column_type(self):
        assert infer_column_type(Attribute('1', 'a', ['1', '2', 'x'])) == 'integer'
        assert infer_column_type(Attribute('2', 'b', ['1.5', '2.5'])) == 'float'
        assert infer_column_type(Attribute('3', 'c', ['2020-01-01', '2021-12-31'])) == 'date'
        assert infer_column_type(Attribute('4', 'd', [])) == 'string'
    
    def test_group_extractor_length(self):
        settings = FeatureSettings(active_feature_groups=['char-dist-features'])
        extractor = settings.create_extractors(['a'])[0]
        
        assert isinstance(extractor, GroupFeatureExtractor)
        values = extractor.extract(Attribute('1', 'x', ['abc', 'a']))
        assert len(values) == len(CHAR_DIST_ALPHABET)
        assert sum(values) == pytest.approx(1.0)
    
    def test_empty_column_gives_declared_length(self):
        settings = FeatureSettings.from_config(DEFAULT_FEATURES_CONFIG)
        builder = FeatureVectorBuilder(settings.create_extractors(['a', 'b']))
        
        vector = builder.extract(Attribute('1', 'empty', []))
        assert len(vector) == len(builder.feature_names)
    
    def test_edit_distance(self):
        assert edit_distance('kitten', 'sitting') == 3
        assert edit_distance('', 'abc') == 3
        assert normalise_header('Phone_Number ') == 'phone number'


class TestClassExampleExtractors:
    """Tests for extractors fitted on labelled headers."""
    
    EXAMPLES = [
        ('10', 'phone', 'phone'),
        ('11', 'telephone', 'phone'),
        ('12', 'email', 'email'),
    ]
    
    def test_min_edit_distance(self):
        extractor = MinEditDistanceFeatureExtractor(['phone', 'email', 'address'], self.EXAMPLES)
        
        values = extractor.extract(Attribute('99', 'Phone', ['1']))
        assert values[0] == 0.0
        assert 0.0 < values[1] <= 1.0
        assert values[2] == 1.0
    
    def test_never_compares_column_with_itself(self):
        extractor = MinEditDistanceFeatureExtractor(['phone', 'email'], self.EXAMPLES)
        
        values = extractor.extract(Attribute('10', 'phone', ['1']))
        assert values[0] == pytest.approx(edit_distance('phone', 'telephone') / len('telephone'))
    
    def test_bagged_copies_share_exclusion(self):
        extractor = MinEditDistanceFeatureExtractor(['email'], self.EXAMPLES)
        
        bag = Attribute('12#bag0', 'email', ['a@b'], column_id='12')
        assert extractor.extract(bag) == [1.0]
    
    def test_knn_proportions(self):
        extractor = KnnHeaderFeatureExtractor(['phone', 'email'], self.EXAMPLES, num_neighbours=2)
        
        values = extractor.extract(Attribute('99', 'phone', []))
        assert values == [1.0, 0.0]


class TestFeatureSettings:
    """Tests for feature configuration parsing."""
    
    def test_unknown_feature_rejected(self):
        with pytest.raises(ValidationError):
            FeatureSettings(active_features=['no-such-feature'])
    
    def test_unknown_parameter_rejected(self):
        with pytest.raises(ValidationError):
            FeatureSettings(
                active_feature_groups=['prop-instances-per-class-in-knearestneighbours'],
                feature_extractor_params={'prop-instances-per-class-in-knearestneighbours': {'k': 3}},
            )
    
    def test_catalogue_order_is_kept(self):
        a = FeatureSettings(active_features=['shannon-entropy', 'num-unique-vals'])
        b = FeatureSettings(active_features=['num-unique-vals', 'shannon-entropy'])
        
        assert a.active_features == b.active_features == ['num-unique-vals', 'shannon-entropy']
    
    def test_parameters_reach_extractor(self):
        settings = FeatureSettings.from_config({
            'active_feature_groups': ['prop-instances-per-class-in-knearestneighbours'],
            'feature_extractor_params': {
                'prop-instances-per-class-in-knearestneighbours': {'num-neighbours': 5},
            },
        })
        extractor = settings.create_extractors(['a'])[0]
        
        assert extractor.num_neighbours == 5
    
    def test_round_trip_dict(self):
        settings = FeatureSettings.from_config(DEFAULT_FEATURES_CONFIG)
        assert FeatureSettings.from_config(settings.to_dict()).to_dict() == settings.to_dict()


class TestFeatureVectorBuilder:
    """Tests for feature vector construction."""
    
    def test_shape(self):
        extractors = [
            SingleFeatureExtractor('num-unique-vals', lambda a: len(set(a.values))),
            GroupFeatureExtractor('pair', ['x', 'y'], lambda a: [1, 2]),
        ]
        builder = FeatureVectorBuilder(extractors)
        attrs = [Attribute('1', 'a', ['x', 'y']), Attribute('2', 'b', ['x'])]
        
        X = builder.build(attrs)
        assert builder.feature_names == ['num-unique-vals', 'x', 'y']
        assert X.shape == (2, 3)
        assert X[0].tolist() == [2.0, 1.0, 2.0]
    
    def test_no_extractors_gives_zero_width(self):
        builder = FeatureVectorBuilder([])
        
        X = builder.build([Attribute('1', 'a', ['x'])])
        assert X.shape == (1, 0)
    
    def test_length_mismatch_is_internal_error(self):
        broken = GroupFeatureExtractor('broken', ['x', 'y'], lambda a: [1.0])
        builder = FeatureVectorBuilder([broken])
        
        with pytest.raises(FeatureExtractionError):
            builder.build([Attribute('1', 'a', ['x'])])


class TestUtils:
    """Tests for utility classes."""
    
    def test_timer(self):
        """Test Timer context manager."""
        with Timer("test", log=False) as t:
            time.sleep(0.1)
        
        assert t.elapsed is not None
        assert t.elapsed >= 0.1
    
    def test_timer_records_failures(self):
        with pytest.raises(ValueError):
            with Timer("failing", log=False) as t:
                raise ValueError("boom")
        
        assert t.elapsed is not None
    
    def test_exception_status_codes(self):
        """Test custom exceptions."""
        assert NotFoundError("x").status_code == 404
        assert ValidationError("x").status_code == 400
        assert isinstance(DataError("x"), BadRequestError)
        assert isinstance(TrainingError("x"), InternalError)
        assert InferenceError("x").status_code == 500
    
    def test_training_executor_runs_tasks(self):
        executor = TrainingExecutor(max_workers=1)
        try:
            assert executor.submit(lambda x: x * 2, 21).result(timeout=5) == 42
        finally:
            executor.shutdown()
    
    def test_compute_session_yields_device(self):
        with compute_session("test") as session:
            assert session.device.type in ('cpu', 'cuda')
