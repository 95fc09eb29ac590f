"""
Settings loading.

Builds the persisted Settings record from an optional JSON settings file
and STORYKEEP_* environment variables (environment wins). Entry points
call load_dotenv() before this so a local .env file is honoured.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .models import Settings, parse_settings
from .utils.errors import ValidationError

logger = logging.getLogger(__name__)

SETTINGS_FILE_ENV = "STORYKEEP_SETTINGS_FILE"

# Environment variable -> Settings field
_ENV_FIELDS = {
    "STORYKEEP_DEFAULT_FORMAT": "default_format",
    "STORYKEEP_FILENAME_TEMPLATE": "filename_template",
    "STORYKEEP_INCLUDE_REVIEWS": "include_reviews",
    "STORYKEEP_GENERATE_COVERS": "generate_covers",
    "STORYKEEP_COVER_THEME": "cover_theme",
    "STORYKEEP_TYPESET_PDF": "typeset_pdf",
    "STORYKEEP_DOWNLOAD_DELAY": "download_delay",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
_BOOLEAN_FIELDS = {"include_reviews", "generate_covers", "typeset_pdf"}
_ALIAS_TO_FIELD = {
    info.alias: name for name, info in Settings.model_fields.items() if info.alias
}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValidationError(
        f"Environment variable {name} must be a boolean (got '{value}').",
        details={"variable": name}
    )


def read_settings_file(path: Path) -> Dict[str, Any]:
    """
    Read a JSON settings file.

    Returns:
        The settings mapping, or an empty dict if the file does not exist

    Raises:
        ValidationError: If the file is not a JSON object
    """
    if not path.exists():
        logger.warning(f"Settings file {path} not found, using defaults")
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(
            f"Could not read settings file {path}: {str(e)}",
            details={"path": str(path)}
        )
    if not isinstance(data, dict):
        raise ValidationError(
            f"Settings file {path} must contain a JSON object.",
            details={"path": str(path)}
        )
    return data


def settings_from_env(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Collect Settings fields from STORYKEEP_* variables."""
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for name, field_name in _ENV_FIELDS.items():
        raw = environ.get(name)
        if raw is None or raw == "":
            continue
        if field_name in _BOOLEAN_FIELDS:
            values[field_name] = _parse_bool(name, raw)
        else:
            values[field_name] = raw
    return values


def load_settings(environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Load persisted defaults.

    Args:
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings

    Raises:
        ValidationError: If the settings file or an environment value is invalid
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}
    settings_file = environ.get(SETTINGS_FILE_ENV)
    if settings_file:
        for key, value in read_settings_file(Path(settings_file)).items():
            data[_ALIAS_TO_FIELD.get(key, key)] = value
    data.update(settings_from_env(environ))
    settings = parse_settings(data)
    logger.debug(f"Loaded settings: {settings.model_dump(exclude_none=True)}")
    return settings
