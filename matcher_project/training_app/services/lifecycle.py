"""
Model lifecycle: CRUD orchestration and the training state machine.

A model is UNTRAINED after every create or update, BUSY while a
background run is in flight, and COMPLETE or ERROR once that run ends.
Whether a COMPLETE model may still be served is decided by the
ConsistencyChecker on every request.
"""
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import Dict, List, Optional, Set

from django.utils import timezone

from dataset_app.services import DatasetStorage
from inference_app.services import DataSetPrediction, ModelPredictor
from model_registry.models import MatcherModel, Status, TrainState
from model_registry.requests import ModelRequest, validate_cost_matrix
from model_registry.services import ConsistencyChecker, ModelStorage
from shared.features import DEFAULT_FEATURES_CONFIG
from shared.utils import get_logger
from shared.utils.exceptions import BadRequestError, InternalError, MatcherException, NotFoundError
from shared.utils.runtime import get_training_executor
from training_app.models import TrainingRun
from training_app.services.trainer import ModelTrainer

logger = get_logger(__name__)


class ModelLifecycle:
    """
    Entry point for every model operation.
    
    Train requests are serialised per model: a per-id lock guards the
    in-process check and the storage layer applies the BUSY transition
    as a single conditional UPDATE, so concurrent requests for the same
    model launch at most one run. Runs execute on the training executor;
    their failures only ever surface as the model's ERROR state.
    """
    
    _locks: Dict[int, threading.RLock] = {}
    _locks_guard = threading.Lock()
    _tasks: Dict[int, Future] = {}
    
    def __init__(
        self,
        models: Optional[ModelStorage] = None,
        datasets: Optional[DatasetStorage] = None,
        trainer: Optional[ModelTrainer] = None,
        predictor: Optional[ModelPredictor] = None,
        checker: Optional[ConsistencyChecker] = None,
        executor=None
    ):
        self.models = models or ModelStorage()
        self.datasets = datasets or DatasetStorage()
        self.trainer = trainer or ModelTrainer(self.models, self.datasets)
        self.predictor = predictor or ModelPredictor(self.models, self.datasets)
        self.checker = checker or ConsistencyChecker(self.models, self.datasets)
        self._executor = executor
    
    @property
    def executor(self):
        if self._executor is None:
            self._executor = get_training_executor()
        return self._executor
    
    @classmethod
    def _lock_for(cls, model_id: int) -> threading.RLock:
        with cls._locks_guard:
            return cls._locks.setdefault(model_id, threading.RLock())
    
    @classmethod
    def _track_task(cls, model_id: int, task: Future) -> None:
        with cls._locks_guard:
            cls._tasks[model_id] = task
        task.add_done_callback(lambda done: cls._release_task(model_id, done))
    
    @classmethod
    def _release_task(cls, model_id: int, task: Optional[Future] = None) -> None:
        with cls._locks_guard:
            if task is None or cls._tasks.get(model_id) is task:
                cls._tasks.pop(model_id, None)
    
    @classmethod
    def running_task(cls, model_id: int) -> Optional[Future]:
        """Handle of the in-flight training run of a model, if any."""
        with cls._locks_guard:
            task = cls._tasks.get(model_id)
        if task is not None and task.done():
            return None
        return task
    
    # labels
    
    def _valid_labels(self, label_data: Dict) -> Dict[str, str]:
        """Keep labels whose key is a stored column id; log the rest."""
        column_map = self.datasets.column_map()
        valid = {}
        for key, label in label_data.items():
            if isinstance(key, int) and key in column_map:
                valid[str(key)] = label
            else:
                logger.warning(f"Dropping label '{label}' for unknown column {key}")
        return valid
    
    def _ref_datasets(self, label_data: Dict[str, str]) -> List[int]:
        column_map = self.datasets.column_map()
        return sorted({column_map[int(key)].dataset_id for key in label_data if int(key) in column_map})
    
    # CRUD
    
    def get_model(self, model_id: int) -> Optional[MatcherModel]:
        return self.models.get(model_id)
    
    def model_keys(self) -> List[int]:
        return self.models.keys()
    
    def create_model(self, request: ModelRequest) -> MatcherModel:
        """
        Create a model from a request, applying defaults for absent fields.
        
        Returns:
            The stored model, UNTRAINED
        """
        classes = request.classes or []
        cost_matrix = request.cost_matrix or []
        validate_cost_matrix(classes, cost_matrix)
        
        label_data = self._valid_labels(request.label_data or {})
        now = timezone.now()
        model = MatcherModel(
            description=request.description if request.description is not None else 'unknown',
            classes=classes,
            features=request.features if request.features is not None else dict(DEFAULT_FEATURES_CONFIG),
            cost_matrix=cost_matrix,
            label_data=label_data,
            ref_datasets=self._ref_datasets(label_data),
            num_bags=request.num_bags,
            bag_size=request.bag_size,
            status=Status.UNTRAINED,
            state_date_created=now,
            state_date_changed=now,
            date_created=now,
            date_modified=now,
        )
        if request.model_type is not None:
            model.model_type = request.model_type
        if request.resampling_strategy is not None:
            model.resampling_strategy = request.resampling_strategy
        
        try:
            self.models.add(model)
        except MatcherException:
            raise
        except Exception as e:
            logger.error(f"Failed to create model: {e}")
            raise InternalError("Failed to create resource.") from e
        
        logger.info(f"Created model {model.id} with {len(label_data)} labels")
        return model
    
    def update_model(self, model_id: int, request: ModelRequest) -> MatcherModel:
        """
        Merge a request over a stored model.
        
        Absent fields keep their value; ``label_data`` None keeps the
        labels and ``{}`` clears them. The training state always returns
        to UNTRAINED and any trained artifact is dropped.
        """
        with self._lock_for(model_id):
            old = self.models.get(model_id)
            if old is None:
                raise NotFoundError(f"Model {model_id} does not exist")
            
            def pick(value, current):
                return current if value is None else value
            
            classes = pick(request.classes, old.classes)
            cost_matrix = pick(request.cost_matrix, old.cost_matrix)
            validate_cost_matrix(classes, cost_matrix)
            
            if request.label_data is None:
                label_data = old.label_data
            else:
                label_data = self._valid_labels(request.label_data)
            
            model = MatcherModel(
                id=model_id,
                description=pick(request.description, old.description),
                model_type=pick(request.model_type, old.model_type),
                classes=classes,
                features=pick(request.features, old.features),
                cost_matrix=cost_matrix,
                resampling_strategy=pick(request.resampling_strategy, old.resampling_strategy),
                label_data=label_data,
                ref_datasets=self._ref_datasets(label_data),
                model_path=None,
                artifact_hash=None,
                status=Status.UNTRAINED,
                status_message='',
                state_date_created=old.state_date_created,
                state_date_changed=timezone.now(),
                date_created=old.date_created,
                date_modified=timezone.now(),
                num_bags=pick(request.num_bags, old.num_bags),
                bag_size=pick(request.bag_size, old.bag_size),
            )
            
            try:
                self.models.update(model_id, model)
            except MatcherException:
                raise
            except Exception as e:
                logger.error(f"Failed to update model {model_id}: {e}")
                raise InternalError("Failed to update resource.") from e
            self.models.delete_artifact(model_id)
        
        logger.info(f"Updated model {model_id}; training state reset")
        return model
    
    def delete_model(self, model_id: int) -> Optional[int]:
        with self._lock_for(model_id):
            deleted = self.models.remove(model_id)
        if deleted is not None:
            self._release_task(model_id)
            with self._locks_guard:
                self._locks.pop(model_id, None)
        return deleted
    
    def delete_dataset(self, dataset_id: int) -> Optional[int]:
        """
        Delete a dataset after stripping its columns from every model.
        
        Each affected model goes through ``update_model`` and so returns
        to UNTRAINED.
        
        Returns:
            The deleted dataset id, or None if it did not exist
        """
        dataset = self.datasets.get(dataset_id)
        if dataset is None:
            return None
        
        column_ids: Set[str] = {str(pk) for pk in dataset.columns.values_list('id', flat=True)}
        for model in self.models.list_values():
            if dataset_id not in model.ref_datasets and not column_ids & set(model.label_data):
                continue
            remaining = {
                key: label
                for key, label in model.labels.items()
                if str(key) not in column_ids
            }
            self.update_model(model.id, ModelRequest(label_data=remaining))
            logger.info(f"Removed columns of dataset {dataset_id} from model {model.id}")
        
        return self.datasets.remove(dataset_id)
    
    # training
    
    def train_model(self, model_id: int) -> TrainState:
        """
        Request training of a model.
        
        A consistent model and a model already in training are returned
        as they are. Otherwise the model moves to BUSY and a background
        run is submitted.
        
        Returns:
            The model's training state after the request
        """
        with self._lock_for(model_id):
            model = self.models.get(model_id)
            if model is None:
                raise NotFoundError(f"Model {model_id} does not exist")
            
            if self.checker.is_consistent(model_id):
                logger.info(f"Model {model_id} is already trained")
                return model.train_state
            
            if model.status == Status.BUSY:
                logger.info(f"Model {model_id} is already being trained")
                return model.train_state
            
            state = self.models.try_mark_busy(model_id)
            if state is None:
                current = self.models.get(model_id)
                if current is None:
                    raise NotFoundError(f"Model {model_id} does not exist")
                return current.train_state
            
            run = TrainingRun.objects.create(model_id=model_id, model_type=model.model_type)
            task = self.executor.submit(self._run_training, model_id, state.date_changed, run.id)
            self._track_task(model_id, task)
            logger.info(f"Launched training run {run.id} for model {model_id}")
            return state
    
    def _is_current_run(self, model_id: int, busy_since: datetime) -> bool:
        model = self.models.get(model_id)
        return (
            model is not None
            and model.status == Status.BUSY
            and model.state_date_changed == busy_since
        )
    
    def _finish_run(self, run_id: int, status: str, error: Optional[str] = None, metrics: Optional[Dict] = None) -> None:
        TrainingRun.objects.filter(pk=run_id).update(
            status=status,
            error_message=error,
            metrics=metrics or {},
            completed_at=timezone.now(),
        )
    
    def _fail_run(self, model_id: int, busy_since: datetime, run_id: int, message: str) -> None:
        state = self.models.update_train_state(
            model_id,
            Status.ERROR,
            message,
            expected_status=Status.BUSY,
            expected_date_changed=busy_since,
        )
        if state is None:
            logger.warning(f"Model {model_id} changed during training; run {run_id} leaves its state alone")
        self._finish_run(run_id, 'failed', error=message)
    
    def _run_training(self, model_id: int, busy_since: datetime, run_id: int) -> None:
        """
        Body of a background run. Every outcome ends in a training state.
        
        Only the run started by the BUSY transition stamped ``busy_since``
        may change the model's state. The final check, the artifact write
        and the transition happen under the model's lock.
        """
        try:
            artifact = self.trainer.train(model_id)
        except Exception as e:
            logger.exception(f"Training of model {model_id} failed")
            self._fail_run(model_id, busy_since, run_id, f"Failed to train model {model_id}: {str(e).rstrip('.')}.")
            return
        
        if artifact is None:
            self._fail_run(model_id, busy_since, run_id, "Failed to identify model paths.")
            return
        
        with self._lock_for(model_id):
            if not self._is_current_run(model_id, busy_since):
                logger.warning(f"Model {model_id} changed during training; discarding run {run_id}")
                self._finish_run(run_id, 'discarded', metrics=artifact.metrics)
                return
            
            if not self.models.write_model(model_id, artifact):
                self._fail_run(model_id, busy_since, run_id, "Failed to write trained model.")
                return
            
            state = self.models.update_train_state(
                model_id,
                Status.COMPLETE,
                delete_artifact=False,
                expected_status=Status.BUSY,
                expected_date_changed=busy_since,
            )
            if state is None:
                logger.warning(f"Model {model_id} changed during training; discarding run {run_id}")
                self.models.delete_artifact(model_id)
                self._finish_run(run_id, 'discarded', metrics=artifact.metrics)
                return
            
            self._finish_run(run_id, 'completed', metrics=artifact.metrics)
    
    # prediction
    
    def predict_model(self, model_id: int, dataset_id: int) -> DataSetPrediction:
        """
        Predict the columns of a dataset with a trained model.
        
        Raises:
            NotFoundError: If the model does not exist
            BadRequestError: If the model is not trained or is stale
        """
        if self.models.get(model_id) is None:
            raise NotFoundError(f"Model {model_id} does not exist")
        if not self.checker.is_consistent(model_id):
            raise BadRequestError(f"Prediction failed. Model {model_id} is not trained.")
        return self.predictor.predict(model_id, dataset_id)
