from pathlib import Path
import functools

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the naive Bayes classification service.

    Values are populated from environment variables using the prefix
    `NBCLASSIFIER_`, or from the `.env.dev` file when present.

    Examples
    --------
    - `NBCLASSIFIER_MODEL_DIR=/var/lib/nbclassifier/models`
    - `NBCLASSIFIER_LOAD_ALL_ON_STARTUP=true`
    - `NBCLASSIFIER_LOG_LEVEL=DEBUG`

    Notes
    -----
    - Use `get_settings()` rather than instantiating this class directly, so
      tests can override it through `app.dependency_overrides`.
    """

    model_config = SettingsConfigDict(env_file=".env.dev", env_prefix="NBCLASSIFIER_")

    # Directory holding one <model_name>.json file per model
    MODEL_DIR: Path = Path("saved_models")

    # Load every stored model into memory at startup instead of lazily
    LOAD_ALL_ON_STARTUP: bool = False

    # Max length of a train/predict text (chars)
    MAX_TEXT_LEN: int = 100_000

    # Bind address used by the `nbclassifier-serve` CLI
    HOST: str = "127.0.0.1"
    PORT: int = 8080

    # Minimum log level (DEBUG, INFO, WARNING...)
    LOG_LEVEL: str = "INFO"

    # Emit logs in structured JSON format
    LOG_JSON: bool = True


@functools.cache
def get_settings() -> Settings:
    """
    Retrieve a cached global instance of the Settings.

    Returns
    -------
    Settings
        The cached settings instance.
    """
    return Settings()
