"""
Run configuration with environment variable defaults.

Environment Variables:
    KRUNK_TARGET: Cluster backend (default: minikube)
    KRUNK_TIMEOUT: Per-step deadline, e.g. 6m, 90s, 1h30m (default: 6m)
    KRUNK_REMOTE_HOST: ssh destination for the remote target
    KRUNK_CLUSTER_NAME: minikube profile or kind/k3d cluster name
    KRUNK_LOG_LEVEL: DEBUG, INFO, WARNING or ERROR (default: INFO)
    KRUNK_LOG_FORMAT: console or json (default: console)

Command-line flags take precedence over the environment.
"""

import os
import re
import logging
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from krunk.core.error_handling import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "minikube"
DEFAULT_TIMEOUT = "6m"

_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_FULL = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|h|m|s))+")


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration into seconds.

    Accepts bare numbers (seconds) and Go-style strings such as "6m",
    "90s", "1h30m" or "250ms".

    Raises:
        ValueError: If the value is not a positive duration
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            if not _DURATION_FULL.fullmatch(text):
                raise ValueError(f"Invalid duration: {value!r}")
            seconds = sum(
                float(amount) * _DURATION_UNITS[unit]
                for amount, unit in _DURATION_PART.findall(text)
            )
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


def env_defaults(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect CLI defaults from KRUNK_* environment variables."""
    environ = os.environ if environ is None else environ
    return {
        "target": environ.get("KRUNK_TARGET", DEFAULT_TARGET),
        "timeout": environ.get("KRUNK_TIMEOUT", DEFAULT_TIMEOUT),
        "remote_host": environ.get("KRUNK_REMOTE_HOST"),
        "cluster_name": environ.get("KRUNK_CLUSTER_NAME"),
        "log_level": environ.get("KRUNK_LOG_LEVEL", "INFO").upper(),
        "log_format": environ.get("KRUNK_LOG_FORMAT", "console").lower(),
    }


class RunConfig(BaseModel):
    """Everything one krunk invocation needs besides the scene itself."""
    model_config = ConfigDict(frozen=True)

    scene_dir: Path = Field(..., description="Directory containing scene.yaml")
    target: str = Field(DEFAULT_TARGET, description="Cluster backend")
    timeout: float = Field(
        parse_duration(DEFAULT_TIMEOUT), gt=0, description="Per-step deadline in seconds"
    )
    remote_host: Optional[str] = None
    cluster_name: Optional[str] = None
    skip_provision: bool = False
    dry_run: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    @field_validator("timeout", mode="before")
    @classmethod
    def coerce_duration(cls, v):
        return parse_duration(v)

    @classmethod
    def from_options(cls, scene: Optional[Union[str, Path]], **options: Any) -> "RunConfig":
        """
        Build a validated config from CLI-style options.

        Raises:
            ConfigurationError: Missing scene or invalid option values
        """
        if not scene:
            raise ConfigurationError(
                "--scene is a required flag. Try scenarios/005, for example"
            )
        options = {k: v for k, v in options.items() if v is not None}
        try:
            return cls(scene_dir=Path(scene), **options)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(f"Invalid options: {problems}") from e
