from typing import Annotated, Final

from fastapi import APIRouter, Depends, HTTPException, Response
import prometheus_client

from nbclassifier.api import config, metrics, registry
from nbclassifier.api.schemas import (
    BestFit,
    HealthResponse,
    PredictRequest,
    PredictResponse,
    TrainRequest,
)
from nbclassifier.model.errors import (
    ClassifierError,
    FormatError,
    ModelConflictError,
    ModelNotFoundError,
    NotTrainedError,
    StorageError,
)
from nbclassifier.model.naivebayes import Model
from nbclassifier.model.observation import Observation
from nbclassifier.model.registry import ModelRegistry

# HTTP status returned for each classifier error.
ERROR_STATUS_CODES: Final[dict[type[ClassifierError], int]] = {
    ModelNotFoundError: 404,
    ModelConflictError: 409,
    NotTrainedError: 409,
    FormatError: 400,
    StorageError: 500,
}

router: Final[APIRouter] = APIRouter()


def _http_error(error: ClassifierError) -> HTTPException:
    """Translate a classifier error into the matching HTTPException."""
    return HTTPException(
        status_code=ERROR_STATUS_CODES.get(type(error), 500), detail=str(error)
    )


def _check_text_length(text: str, settings: config.Settings) -> None:
    if len(text) > settings.MAX_TEXT_LEN:
        raise HTTPException(status_code=413, detail="Item too large")


@router.get("/health", response_model=HealthResponse)
def health(
    model_registry: Annotated[ModelRegistry, Depends(registry.get_registry)],
):
    """
    Return a basic health status and the number of models held in memory.

    Used by load balancers and uptime monitors to check that the service is
    responsive and its registry has been initialized.

    Parameters
    ----------
    model_registry : ModelRegistry
        The registry created at startup (injected via dependency).

    Returns
    -------
    HealthResponse
        `"status": "ok"` and the number of models currently cached.
    """
    return HealthResponse(status="ok", models_loaded=len(model_registry))


@router.get("/metrics")
def app_metrics(
    metrics: Annotated[metrics.MetricsManager, Depends(metrics.get_metrics_manager)],
):
    """
    Expose runtime metrics for Prometheus to scrape.

    Returns
    -------
    Response
        A plaintext response in Prometheus exposition format with request
        counts, latencies, payload sizes and train/predict timings.
    """
    return Response(
        metrics.render(),
        media_type=prometheus_client.CONTENT_TYPE_LATEST,
    )


@router.post("/model", response_model=Model)
def create_model(
    model: Model,
    model_registry: Annotated[ModelRegistry, Depends(registry.get_registry)],
    overwrite: bool = False,
):
    """
    Create a model from the posted payload.

    The payload is a full model, so an empty model only needs a `name`
    while a trained one can be imported as is.

    Parameters
    ----------
    model : Model
        The model to store. Inconsistent payloads are rejected with 422.
    model_registry : ModelRegistry
        The registry created at startup (injected via dependency).
    overwrite : bool
        Query flag replacing an existing model of the same name.

    Returns
    -------
    Model
        The stored model.

    Raises
    ------
    HTTPException
        - 409 if a model of that name exists and `overwrite` is not set.
        - 400 if the name cannot be used as a file name.
        - 500 if the model file cannot be written.
    """
    try:
        return model_registry.create(model, overwrite=overwrite)
    except ClassifierError as e:
        raise _http_error(e) from e


@router.get("/models", response_model=list[Model])
def list_models(
    model_registry: Annotated[ModelRegistry, Depends(registry.get_registry)],
    load_all: bool = False,
):
    """
    List the models held in memory, sorted by name.

    With `load_all`, every model stored in the model directory is loaded into
    memory first. Files that cannot be loaded are skipped.

    Parameters
    ----------
    model_registry : ModelRegistry
        The registry created at startup (injected via dependency).
    load_all : bool
        Query flag loading every stored model before listing.

    Returns
    -------
    list[Model]
        The cached models.

    Raises
    ------
    HTTPException
        - 500 if the model directory cannot be listed.
    """
    try:
        return model_registry.list(load_all=load_all)
    except ClassifierError as e:
        raise _http_error(e) from e


@router.get("/model/{model_name}", response_model=Model)
def view_model(
    model_name: str,
    model_registry: Annotated[ModelRegistry, Depends(registry.get_registry)],
):
    """
    Return the named model, loading it from disk if it is not in memory.

    Raises
    ------
    HTTPException
        - 404 if no readable model of that name exists.
        - 400 if the name cannot be used as a file name.
    """
    try:
        model = model_registry.get(model_name)
    except ClassifierError as e:
        raise _http_error(e) from e

    if model is None:
        raise _http_error(ModelNotFoundError(model_name))

    return model


@router.delete("/model/{model_name}", status_code=204)
def delete_model(
    model_name: str,
    model_registry: Annotated[ModelRegistry, Depends(registry.get_registry)],
):
    """
    Remove the named model from memory and from disk.

    Returns
    -------
    Response
        An empty 204 response.

    Raises
    ------
    HTTPException
        - 404 if the model is neither in memory nor stored.
        - 500 if the model file cannot be removed.
    """
    try:
        model_registry.delete(model_name)
    except ClassifierError as e:
        raise _http_error(e) from e

    return Response(status_code=204)


@router.post("/model/{model_name}/train", response_model=Model)
def train_model(
    model_name: str,
    train_request: TrainRequest,
    metrics: Annotated[metrics.MetricsManager, Depends(metrics.get_metrics_manager)],
    model_registry: Annotated[ModelRegistry, Depends(registry.get_registry)],
    settings: Annotated[config.Settings, Depends(config.get_settings)],
):
    """
    Train the named model with one labeled text and return the updated model.

    The text is split into words on single spaces and credited to every
    class listed in the request. Training time is recorded on the
    `model_train_seconds` histogram.

    Parameters
    ----------
    model_name : str
        Name of the model to train.
    train_request : TrainRequest
        Class labels (at least one) and the text to learn from.
    metrics : MetricsManager
        Metrics manager (injected via dependency).
    model_registry : ModelRegistry
        The registry created at startup (injected via dependency).
    settings : Settings
        Application settings providing `MAX_TEXT_LEN`.

    Returns
    -------
    Model
        The model after training.

    Raises
    ------
    HTTPException
        - 404 if the model does not exist.
        - 413 if the text exceeds `MAX_TEXT_LEN`.
        - 500 if the trained model cannot be written.
    """
    _check_text_length(train_request.text, settings)

    observation = Observation.from_text(train_request.classes, train_request.text)

    try:
        with metrics.train_time.time():
            return model_registry.train(model_name, observation)
    except ClassifierError as e:
        raise _http_error(e) from e


@router.post("/model/{model_name}/predict", response_model=PredictResponse)
def predict(
    model_name: str,
    predict_request: PredictRequest,
    metrics: Annotated[metrics.MetricsManager, Depends(metrics.get_metrics_manager)],
    model_registry: Annotated[ModelRegistry, Depends(registry.get_registry)],
    settings: Annotated[config.Settings, Depends(config.get_settings)],
):
    """
    Score a text against every class of the named model.

    Nothing is persisted. Scoring time is recorded on the
    `model_predict_seconds` histogram.

    Parameters
    ----------
    model_name : str
        Name of a trained model.
    predict_request : PredictRequest
        The text to classify.
    metrics : MetricsManager
        Metrics manager (injected via dependency).
    model_registry : ModelRegistry
        The registry created at startup (injected via dependency).
    settings : Settings
        Application settings providing `MAX_TEXT_LEN`.

    Returns
    -------
    PredictResponse
        The unnormalized likelihood of every class and the best fit.

    Raises
    ------
    HTTPException
        - 404 if the model does not exist.
        - 409 if the model has not been trained yet.
        - 413 if the text exceeds `MAX_TEXT_LEN`.
    """
    _check_text_length(predict_request.text, settings)

    observation = Observation.from_text([], predict_request.text)

    try:
        with metrics.predict_time.time():
            prediction = model_registry.predict(model_name, observation)
    except ClassifierError as e:
        raise _http_error(e) from e

    best_name, best_score = prediction.best_fit()

    return PredictResponse(
        prediction=dict(prediction),
        best_fit=BestFit(name=best_name, score=best_score),
    )
