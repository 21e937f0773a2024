from argparse import ArgumentParser
from pathlib import Path

import uvicorn

from nbclassifier.api import config


def main() -> None:
    """
    Entry point for the `nbclassifier-serve` CLI.

    Command line options override the matching `NBCLASSIFIER_*` settings.

    Example:
        nbclassifier-serve --port 8080 --model-dir saved_models
    """
    settings = config.get_settings()

    parser = ArgumentParser("nbclassifier-serve")
    parser.add_argument("--host", type=str, default=settings.HOST, help="bind address")
    parser.add_argument("--port", "-p", type=int, default=settings.PORT, help="port")
    parser.add_argument(
        "--model-dir",
        type=Path,
        default=None,
        help="directory holding <model_name>.json files",
    )
    args = parser.parse_args()

    # The app reads its settings through get_settings(), so update the cached
    # instance rather than passing the directory around.
    if args.model_dir is not None:
        settings.MODEL_DIR = args.model_dir

    # Logging is configured by the app lifespan, keep uvicorn off the root logger.
    uvicorn.run(
        "nbclassifier.api.main:app",
        host=args.host,
        port=args.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
