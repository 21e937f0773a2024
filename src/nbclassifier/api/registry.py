from collections.abc import Callable
import functools
import logging
from pathlib import Path

from fastapi import Request

from nbclassifier.model.registry import ModelRegistry

logger = logging.getLogger("nbclassifier.api")

# Expose a callable signature representing "open the registry stored in a directory".
type RegistryFactory = Callable[[Path], ModelRegistry]


def open_registry(model_dir: Path) -> ModelRegistry:
    """
    Create the model directory if needed and return a registry backed by it.

    Raises
    ------
    OSError
        If the directory cannot be created. The service cannot persist any
        model without it, so startup fails.
    """
    model_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Opened model directory", extra={"directory": str(model_dir)})
    return ModelRegistry(model_dir)


@functools.cache
def get_registry_factory() -> RegistryFactory:
    """
    Dependency provider returning a callable that opens a registry.

    Tests override this with a lambda returning a pre-populated registry.
    """
    return open_registry


def get_registry(request: Request) -> ModelRegistry:
    """
    FastAPI dependency returning the registry created during startup.

    The lifespan function stores it on `app.state.registry`.
    """
    return request.app.state.registry
