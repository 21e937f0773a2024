from pathlib import Path

from pydantic import BaseModel, ValidationError

from nbclassifier.model.errors import FormatError, StorageError


def save(path: Path, value: BaseModel) -> None:
    """
    Serialize `value` as JSON and write it to `path`.

    Any existing content at `path` is replaced. The write is a direct
    overwrite, so an interrupted write can leave a truncated file behind.

    Parameters
    ----------
    path : Path
        Destination file. Its parent directory must already exist.
    value : BaseModel
        Entity to persist. Fields are written under their wire aliases.

    Raises
    ------
    StorageError
        If the file cannot be written (missing directory, permissions, ...).
    """
    content: str = value.model_dump_json(by_alias=True)

    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Failed to save file {path}: {e}") from e


def load[T: BaseModel](path: Path, value_type: type[T]) -> T:
    """
    Read `path` and decode its JSON content as a `value_type`.

    Parameters
    ----------
    path : Path
        File previously written by `save`.
    value_type : type[T]
        Entity type to validate the content against.

    Returns
    -------
    T
        The decoded entity.

    Raises
    ------
    StorageError
        If the file cannot be read.
    FormatError
        If the content is not valid JSON or does not match `value_type`.
    """
    try:
        content: str = path.read_text(encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Failed to read file {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise FormatError(f"Failed to load file {path}: {e}") from e

    try:
        return value_type.model_validate_json(content)
    except ValidationError as e:
        raise FormatError(f"Failed to load file {path}: {e}") from e
