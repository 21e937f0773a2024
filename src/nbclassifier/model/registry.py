from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
import re
import threading
from pathlib import Path
from typing import Final

from nbclassifier.common import storage
from nbclassifier.model.errors import (
    ClassifierError,
    FormatError,
    ModelConflictError,
    ModelNotFoundError,
    StorageError,
)
from nbclassifier.model.naivebayes import Model, Prediction
from nbclassifier.model.observation import Observation

logger = logging.getLogger(__name__)

MODEL_FILE_SUFFIX: Final[str] = ".json"

# Model names double as file stems: no separators, no leading dot.
VALID_MODEL_NAME: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_-][A-Za-z0-9_.-]*")


@dataclass
class _NameLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    # Threads holding or waiting for `lock`.
    users: int = 0


class ModelRegistry:
    """
    Named models kept in memory and backed by one JSON file per model.

    Models are resolved from the in-memory cache first and fall back to
    ``<directory>/<name>.json``. Cache entries are never evicted automatically.

    Concurrency
    -----------
    The registry is shared by request threads. A registry-wide lock guards the
    cache dict and the table of per-name locks. Every operation that writes a
    cache entry (`create`, `train`, `delete` and loading a file on a cache
    miss) holds the exclusive lock of the model name for its whole sequence.
    Mutations work on a copy of the cached model that is only published once
    it has been persisted. Published models are never mutated afterwards, so
    cache hits in `get`, `list` and `predict` never wait for the per-name lock.

    Per-name locks only live while some thread holds or waits for them, so the
    lock table stays bounded by the number of in-flight operations.
    """

    def __init__(self, directory: Path) -> None:
        self._directory: Path = directory
        self._models: dict[str, Model] = {}
        self._lock = threading.Lock()
        self._name_locks: dict[str, _NameLock] = {}

    @property
    def directory(self) -> Path:
        return self._directory

    def __len__(self) -> int:
        with self._lock:
            return len(self._models)

    def model_path(self, name: str) -> Path:
        """
        Return the storage path for the model called `name`.

        Raises
        ------
        FormatError
            If `name` cannot be used as a file name inside the registry
            directory.
        """
        if not VALID_MODEL_NAME.fullmatch(name):
            raise FormatError(f"Invalid model name: '{name}'")
        return self._directory / f"{name}{MODEL_FILE_SUFFIX}"

    def get(self, name: str) -> Model | None:
        """
        Resolve a model by name, loading it from disk on a cache miss.

        Returns
        -------
        Model | None
            The cached or freshly loaded model, or None when no file exists
            or the file cannot be decoded as the model called `name`.
        """
        with self._lock:
            model = self._models.get(name)
        if model is not None:
            return model

        path = self.model_path(name)
        with self._name_lock(name):
            return self._resolve(name, path)

    def create(self, model: Model, overwrite: bool = False) -> Model:
        """
        Register a new model, persisting it before it becomes visible.

        Parameters
        ----------
        model : Model
            The model to store, keyed by its `name`.
        overwrite : bool
            Replace an existing model of the same name instead of failing.

        Returns
        -------
        Model
            The registered model.

        Raises
        ------
        FormatError
            If the model name cannot be used as a file name.
        ModelConflictError
            If a model of that name exists and `overwrite` is False.
        StorageError
            If the model file cannot be written. The cache is left unchanged.
        """
        path = self.model_path(model.name)

        with self._name_lock(model.name):
            if not overwrite and self._resolve(model.name, path) is not None:
                raise ModelConflictError(model.name)

            stored = model.model_copy(deep=True)
            storage.save(path, stored)

            with self._lock:
                self._models[stored.name] = stored

        logger.info(
            "Created new model", extra={"model": stored.name, "overwrite": overwrite}
        )
        return stored

    def list(self, load_all: bool = False) -> list[Model]:
        """
        Return the cached models sorted by name.

        Parameters
        ----------
        load_all : bool
            Load every model file in the registry directory into the cache
            first. Files that cannot be loaded are logged and skipped.
        """
        if load_all:
            self.load_all()

        with self._lock:
            return [self._models[name] for name in sorted(self._models)]

    def load_all(self) -> int:
        """
        Load every ``*.json`` file of the registry directory into the cache.

        Models already in the cache are kept as they are, since they are at
        least as recent as their files.

        Returns
        -------
        int
            Number of models newly added to the cache.

        Raises
        ------
        StorageError
            If the directory itself cannot be listed.
        """
        try:
            paths = sorted(self._directory.glob(f"*{MODEL_FILE_SUFFIX}"))
        except OSError as e:
            logger.error(
                "Failed to load all models from dir",
                extra={"directory": str(self._directory)},
            )
            raise StorageError(
                f"Failed to list models in {self._directory}: {e}"
            ) from e

        loaded = 0
        for path in paths:
            name = path.stem
            with self._name_lock(name):
                with self._lock:
                    if name in self._models:
                        continue

                model = self._load_file(path)
                if model is None:
                    continue

                if model.name != name:
                    logger.warning(
                        "Skipping model file named after a different model",
                        extra={"file": path.name, "stored_name": model.name},
                    )
                    continue

                with self._lock:
                    self._models[name] = model
                loaded += 1

            logger.info("Loaded model from file", extra={"model": name})

        return loaded

    def train(self, name: str, observation: Observation) -> Model:
        """
        Train the named model with one observation and persist the result.

        The update is applied to a copy which replaces the cached model only
        after it has been written, so a failed save leaves the cached model
        untouched.

        Raises
        ------
        ModelNotFoundError
            If no model called `name` exists.
        StorageError
            If the trained model cannot be written.
        """
        path = self.model_path(name)

        with self._name_lock(name):
            current = self._resolve(name, path)
            if current is None:
                raise ModelNotFoundError(name)

            trained = current.model_copy(deep=True)
            trained.train(observation)
            storage.save(path, trained)

            with self._lock:
                self._models[name] = trained

        logger.info(
            "Trained model with new observation",
            extra={"model": name, "classes": sorted(observation.classes)},
        )
        return trained

    def predict(self, name: str, observation: Observation) -> Prediction:
        """
        Score the observation against the named model. Nothing is persisted.

        Raises
        ------
        ModelNotFoundError
            If no model called `name` exists.
        NotTrainedError
            If the model has never been trained.
        """
        model = self.get(name)
        if model is None:
            raise ModelNotFoundError(name)

        return model.predict(observation)

    def delete(self, name: str) -> None:
        """
        Remove the named model from the cache and from disk.

        Raises
        ------
        ModelNotFoundError
            If the model is neither cached nor stored.
        StorageError
            If the file exists but cannot be removed. The cache is left
            unchanged in that case.
        """
        path = self.model_path(name)

        with self._name_lock(name):
            with self._lock:
                cached = name in self._models

            if not cached and not path.exists():
                raise ModelNotFoundError(name)

            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to remove file {path}: {e}") from e

            with self._lock:
                self._models.pop(name, None)

        logger.info("Deleted model", extra={"model": name})

    @contextmanager
    def _name_lock(self, name: str) -> Iterator[None]:
        """Hold the exclusive lock of `name`, dropping it once unused."""
        with self._lock:
            entry = self._name_locks.setdefault(name, _NameLock())
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._name_locks[name]

    def _resolve(self, name: str, path: Path) -> Model | None:
        # Caller holds the lock of `name`.
        with self._lock:
            model = self._models.get(name)
        if model is not None:
            return model

        logger.info(
            "Model not found in memory. Falling back to file.", extra={"model": name}
        )
        model = self._load_file(path)
        if model is None:
            return None

        if model.name != name:
            logger.warning(
                "Model file holds a different model",
                extra={"model": name, "stored_name": model.name},
            )
            return None

        with self._lock:
            self._models[name] = model
        return model

    def _load_file(self, path: Path) -> Model | None:
        if not path.is_file():
            return None

        try:
            return storage.load(path, Model)
        except ClassifierError as e:
            logger.warning(
                "Failed to load model from file",
                extra={"file": str(path), "error": str(e)},
            )
            return None
