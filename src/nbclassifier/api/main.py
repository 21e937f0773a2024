from contextlib import asynccontextmanager
import logging
from typing import Final

from fastapi import FastAPI

from nbclassifier.api import config, metrics, registry, routes, static_config
from nbclassifier.api.logs import configure_logging
from nbclassifier.api.middleware import RequestContextMiddleware

logger = logging.getLogger("nbclassifier.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for the classification service.

    Prepares the shared runtime components once at startup and stores them
    on `app.state`: settings, logging, the metrics manager and the model
    registry.

    Notes
    -----
    - Settings, metrics and registry dependencies respect any test-time
      overrides defined via `app.dependency_overrides`.
    - With `LOAD_ALL_ON_STARTUP` every stored model is loaded here, so the
      first request for each model does not pay the file read.
    """
    settings: config.Settings = app.dependency_overrides.get(
        config.get_settings, config.get_settings
    )()
    app.state.settings = settings

    configure_logging(json_logs=settings.LOG_JSON, level=settings.LOG_LEVEL)
    logger.info("Loaded settings")

    metrics_manager: metrics.MetricsManager = app.dependency_overrides.get(
        metrics.get_metrics_manager, metrics.get_metrics_manager
    )()
    app.state.metrics_manager = metrics_manager
    logger.info("Loaded metrics manager")

    registry_factory: registry.RegistryFactory = app.dependency_overrides.get(
        registry.get_registry_factory, registry.get_registry_factory
    )()
    model_registry = registry_factory(settings.MODEL_DIR)
    app.state.registry = model_registry

    if settings.LOAD_ALL_ON_STARTUP:
        loaded = model_registry.load_all()
        logger.info("Preloaded models", extra={"models_loaded": loaded})

    yield


app: Final[FastAPI] = FastAPI(
    lifespan=lifespan, title=static_config.API_TITLE, version=static_config.API_VERSION
)

app.add_middleware(RequestContextMiddleware)

app.include_router(routes.router)
