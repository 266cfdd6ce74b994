import tempfile, yaml, json, os
from typing import Union, Dict, Any
from pathlib import Path
from pydantic import ValidationError
from tierflow.recovery import FileOperationError, FatalError, CorruptionError
from tierflow.logs import get_logger
from tierflow.models import StoreSnapshot
from .core import EntityStore
from .validate import schema_errors, check_schema_version, check_dense_ids

log = get_logger("data.io")

DATA_YAML = 0
DATA_JSON = 1

def data_type_for(file_path: Union[Path, str]) -> int:
    """Pick the serialization format from the file suffix."""
    return DATA_JSON if Path(file_path).suffix.lower() == ".json" else DATA_YAML

def _cleanup(temp_path):
    if temp_path is not None and os.path.exists(temp_path):
        try:
            os.unlink(temp_path)
            log.debug(f"Cleaned up temporary file: {temp_path}")
        except OSError as cleanup_error:
            # Don't mask the original error, just log
            log.warning(f"Could not clean up temp file {temp_path}: {cleanup_error}")

def _create_dirs(file_path : Path):
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except (OSError, PermissionError) as e:
        error_msg = f"Cannot create directory {file_path.parent}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def atomic_write(data_type : int, file_path : Union[Path, str], data : Dict[str, Any], create_dirs : bool = False):
    """
    Serialize and save data to a YAML or JSON file using atomic updates.
    """
    file_path = Path(file_path)
    temp_path = None

    try:
        if create_dirs:
            _create_dirs(file_path)

        # Temporary file in the same directory as target for atomicity
        with tempfile.NamedTemporaryFile(mode='w', encoding='utf-8', dir=file_path.parent, prefix=f".{file_path.name}.", suffix='.tmp', delete=False) as temp_file:
            temp_path = temp_file.name
            if data_type == DATA_YAML:
                yaml.safe_dump(data, temp_file, default_flow_style=False, sort_keys=False, indent=2, allow_unicode=True)
            elif data_type == DATA_JSON:
                json.dump(data, temp_file, indent=2, ensure_ascii=False)
            else:
                raise FatalError("Unsupported Data Format")
            temp_file.flush()
            os.fsync(temp_file.fileno())

        # Atomic replace - this either completely succeeds or completely fails
        os.replace(temp_path, file_path)
        log.debug(f"Successfully saved file: {file_path}")
        return True

    except FatalError:
        _cleanup(temp_path)
        raise

    except (yaml.YAMLError, TypeError, ValueError) as e:
        _cleanup(temp_path)
        # Data cannot be serialized
        error_msg = (f"Data serialization failed for {file_path}. "
                    f"In-memory data may be corrupt or contain non-serializable types: {e}")
        log.critical(error_msg)
        raise FatalError(error_msg) from e

    except (IOError, OSError) as e:
        _cleanup(temp_path)
        error_msg = f"I/O error saving file {file_path}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def save_store(store: EntityStore, file_path: Union[Path, str]) -> Path:
    """Write the whole store to `file_path` (format chosen by suffix)."""
    file_path = Path(file_path)
    snapshot = store.to_snapshot()
    atomic_write(data_type_for(file_path), file_path, snapshot.model_dump(mode='json'), create_dirs=True)
    log.info(f"Saved store to {file_path}")
    return file_path

def load_store(file_path: Union[Path, str]) -> EntityStore:
    """
    Load a store previously written by save_store.

    Args:
        file_path: Path to the YAML or JSON store file

    Returns:
        The populated EntityStore, or an empty one if the file doesn't exist

    Raises:
        CorruptionError: unparsable document, schema violation or broken id ranges
        MigrationNeededError: the file was written by an older schema version
        FileOperationError: the file exists but cannot be read
    """
    file_path = Path(file_path)
    if not file_path.exists():
        log.info(f"No store at {file_path}, starting empty")
        return EntityStore()

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            if data_type_for(file_path) == DATA_JSON:
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise CorruptionError(f"Syntax error in {file_path}: {e}") from e
    except (IOError, OSError) as e:
        raise FileOperationError(f"Failed to read file {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise CorruptionError(f"File {file_path} contains invalid data structure")

    if "schema_version" not in data:
        raise CorruptionError(f"{file_path} has no schema_version")
    check_schema_version(str(data["schema_version"]))

    errors = schema_errors(data)
    if errors:
        for error in errors:
            log.error(f"{file_path}: {error}")
        raise CorruptionError(f"{file_path} failed schema validation: {errors[0]}")

    try:
        snapshot = StoreSnapshot.model_validate(data)
    except ValidationError as e:
        raise CorruptionError(f"Invalid records in {file_path}: {e}") from e

    problems = check_dense_ids(snapshot)
    if problems:
        for problem in problems:
            log.error(f"{file_path}: {problem}")
        raise CorruptionError(f"{file_path} has broken id ranges: {problems[0]}")

    return EntityStore.from_snapshot(snapshot)
