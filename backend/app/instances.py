"""Strategy instances loaded from instances.yaml.

Each entry binds one registered strategy to one symbol with its options:

    instances:
      - symbol: BTCUSDT
        strategy: unified_macd_cci
        options:
          cooldown_bars: ${COOLDOWN_BARS}

``${VAR}`` references are expanded from the environment after loading the
sibling ``.env`` file. A missing file yields no instances.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, model_validator

from core.errors import ConfigurationError
from core.strategy import list_strategies

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class InstanceConfig(BaseModel):
    """One (symbol, strategy) pair."""

    symbol: str
    strategy: str
    enabled: bool = True
    options: dict[str, Any] = {}

    @model_validator(mode="after")
    def _known_strategy(self):
        available = list_strategies()
        if self.strategy not in available:
            raise ValueError(
                f"unknown strategy '{self.strategy}', available: {available}"
            )
        return self


class InstancesConfig(BaseModel):
    """Top-level instances.yaml configuration."""

    instances: list[InstanceConfig] = []

    @model_validator(mode="after")
    def _unique_pairs(self):
        seen: set[tuple[str, str]] = set()
        for inst in self.instances:
            pair = (inst.symbol, inst.strategy)
            if pair in seen:
                raise ValueError(f"duplicate instance {inst.symbol}/{inst.strategy}")
            seen.add(pair)
        return self

    def get_enabled(self) -> list[InstanceConfig]:
        return [i for i in self.instances if i.enabled]


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        def _sub(match: re.Match) -> str:
            name = match.group(1)
            if name not in os.environ:
                raise ConfigurationError(f"Environment variable '{name}' is not set")
            return os.environ[name]

        expanded = _ENV_PATTERN.sub(_sub, value)
        # A value that was a single reference is re-parsed as a YAML scalar
        if expanded != value and _ENV_PATTERN.fullmatch(value):
            return yaml.safe_load(expanded)
        return expanded
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def load_instances(path: Path | str) -> InstancesConfig:
    """Load strategy instances from a YAML file.

    Raises:
        ConfigurationError: On malformed YAML, unknown strategies, duplicate
            pairs or unset environment variables.
    """
    config_path = Path(path)

    env_path = config_path.parent / ".env"
    load_dotenv(env_path, override=False)

    if not config_path.exists():
        logger.info("No instances file found at %s, no strategies configured", config_path)
        return InstancesConfig()

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    try:
        config = InstancesConfig.model_validate(_expand_env(raw))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid instances file {config_path}: {e}") from e

    logger.info(
        "Loaded %d strategy instances (%d enabled) from %s",
        len(config.instances),
        len(config.get_enabled()),
        config_path,
    )
    return config
