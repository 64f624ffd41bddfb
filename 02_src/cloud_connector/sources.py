"""Loading of JSON documents from a local path or a packaged resource."""

import json
from importlib import resources
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import ApplicationConfig
from .errors import ConfigError, LoadError
from .logging_config import get_logger
from .models import DataPoint, Trace

logger = get_logger(__name__)

RESOURCE_PACKAGE = "cloud_connector.resources"


def read_json_document(source: str) -> Any:
    """
    Read and decode a JSON document.

    A local file is preferred; otherwise a packaged resource with the same
    name is used.

    Raises:
        LoadError: Neither exists, or the content is not valid JSON.
    """
    path = Path(source)
    try:
        if path.is_file():
            logger.info("Loading %s from path", source)
            text = path.read_text(encoding="utf-8")
        else:
            resource = resources.files(RESOURCE_PACKAGE).joinpath(source)
            if not resource.is_file():
                raise LoadError(f"Neither a file nor an embedded resource: {source}")
            logger.info("Loading %s from embedded resources", source)
            text = resource.read_text(encoding="utf-8")
    except OSError as e:
        raise LoadError(f"Cannot read {source}: {e}") from e

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise LoadError(f"Invalid JSON in {source}: {e}") from e


def load_trace(source: str) -> Trace:
    """Load a trace: a JSON array of flat objects, one per data point."""
    document = read_json_document(source)
    if not isinstance(document, list):
        raise LoadError(f"Trace {source} must be a JSON array, got {type(document).__name__}")

    trace: Trace = []
    for index, point in enumerate(document):
        if not isinstance(point, dict):
            raise LoadError(
                f"Trace {source} entry {index} must be an object, got {type(point).__name__}"
            )
        trace.append(_check_data_point(source, index, point))

    logger.info("Loaded %d data points from %s", len(trace), source)
    return trace


def _check_data_point(source: str, index: int, point: dict) -> DataPoint:
    for name, value in point.items():
        values = value if isinstance(value, list) else [value]
        if any(isinstance(item, (dict, list)) for item in values):
            raise LoadError(
                f"Trace {source} entry {index} signal {name!r} must be a scalar "
                "or an array of scalars"
            )
    return point


def load_application_config(source: str) -> ApplicationConfig:
    """Load a multi-device configuration document."""
    document = read_json_document(source)
    try:
        config = ApplicationConfig.model_validate(document)
    except ValidationError as e:
        raise ConfigError(f"Invalid application config {source}: {e}") from e

    logger.info(
        "Loaded application config %s with %d device(s)", source, len(config.device_configs)
    )
    return config
