"""Configuration loader with YAML parsing and environment variable substitution."""

import json
import yaml
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from ..utils.errors import ConfigurationError
from .models import AcquisitionConfig

M = TypeVar("M", bound=BaseModel)

RawConfig = Union[None, str, bytes, Mapping[str, Any], BaseModel]


class ConfigLoader:
    """Load and validate acquisition configuration."""

    @staticmethod
    def load_from_file(config_path: str) -> AcquisitionConfig:
        """
        Load configuration from a YAML (or JSON) file with environment
        variable substitution.

        Args:
            config_path: Path to configuration file

        Returns:
            AcquisitionConfig: Validated configuration object

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
            pydantic.ValidationError: If configuration validation fails
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        raw_config = ConfigLoader._substitute_env_vars(raw_config)

        return AcquisitionConfig(**raw_config)

    @staticmethod
    def parse_unit_config(raw: RawConfig, model: Type[M], unit_name: str) -> M:
        """
        Validate the configuration document of a single collector or receiver.

        Args:
            raw: JSON text, mapping, already-built model, or None for defaults
            model: Pydantic model to validate against
            unit_name: Name used in error messages

        Returns:
            Validated model instance

        Raises:
            ConfigurationError: If the document is malformed or invalid
        """
        if isinstance(raw, model):
            return raw

        try:
            if raw is None:
                data: Optional[Dict[str, Any]] = {}
            elif isinstance(raw, (str, bytes)):
                data = json.loads(raw) if raw.strip() else {}
            elif isinstance(raw, BaseModel):
                data = raw.model_dump()
            else:
                data = dict(raw)
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"{unit_name}: configuration must be an object, got {type(data).__name__}"
                )
            return model.model_validate(data)

        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{unit_name}: failed to decode JSON config: {e}") from e

        except ValidationError as e:
            raise ConfigurationError(f"{unit_name}: invalid configuration: {e}") from e

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """
        Recursively substitute ${ENV_VAR} placeholders with environment values.

        Args:
            obj: Object to process (str, dict, list, or primitive)

        Returns:
            Object with environment variables substituted
        """
        if isinstance(obj, str):
            pattern = r'\$\{(\w+)\}'
            return re.sub(pattern, lambda m: os.getenv(m.group(1), ''), obj)

        elif isinstance(obj, dict):
            return {k: ConfigLoader._substitute_env_vars(v) for k, v in obj.items()}

        elif isinstance(obj, list):
            return [ConfigLoader._substitute_env_vars(item) for item in obj]

        return obj
