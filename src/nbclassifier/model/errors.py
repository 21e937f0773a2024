class ClassifierError(Exception):
    """Base class for every recoverable error raised by the classifier core."""


class ModelNotFoundError(ClassifierError):
    """No model of the requested name exists in memory or on disk."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unable to load model: '{name}'")
        self.name = name


class ModelConflictError(ClassifierError):
    """A model of the requested name already exists and overwrite was not set."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Model by that name already exists: '{name}'")
        self.name = name


class NotTrainedError(ClassifierError):
    """Prediction was requested from a model with no training observations."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Model has not been trained: '{name}'")
        self.name = name


class FormatError(ClassifierError):
    """A persisted or transmitted payload could not be decoded."""


class StorageError(ClassifierError):
    """Reading, writing or removing a model file failed."""
