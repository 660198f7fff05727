"""Chaos scene YAML schema + validation."""

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    model_validator,
)
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Union
from pathlib import Path
import logging
import yaml

from krunk.core.error_handling import ConfigurationError

logger = logging.getLogger(__name__)

SCENE_FILE_NAMES = ("scene.yaml", "scene.yml")

# Keys that select a step variant, in resolution order
STEP_KEYS = ("local", "control-plane", "worker", "transfer")


class Requirements(BaseModel):
    """Cluster requirements declared by a scene."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    kubernetes_version: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices(
            "kubernetes-version", "kubernetesVersion", "kubernetes_version"
        ),
        description="Kubernetes version the cluster must run, e.g. v1.19.2",
    )
    control_planes: int = Field(
        1,
        ge=1,
        validation_alias=AliasChoices(
            "control-planes", "controlplanes", "controlPlaneCount", "control_planes"
        ),
        description="Number of control-plane nodes",
    )
    workers: int = Field(
        0,
        ge=0,
        validation_alias=AliasChoices("workers", "workerCount"),
        description="Number of worker nodes",
    )
    cni: str = Field(
        "",
        validation_alias=AliasChoices("cni", "networkPlugin", "network-plugin"),
        description="Network plugin; empty means the backend default",
    )

    @property
    def node_count(self) -> int:
        return self.control_planes + self.workers


class _StepBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    kind: ClassVar[str] = ""

    background: bool = Field(
        False, description="Launch without blocking the rest of the scene"
    )

    def describe(self) -> str:
        """Short human-readable form used in log lines."""
        suffix = " [background]" if self.background else ""
        return f"{self.kind}: {self._detail()}{suffix}"

    def _detail(self) -> str:
        raise NotImplementedError


class LocalStep(_StepBase):
    """Shell command run on the machine hosting krunk."""
    kind: ClassVar[str] = "local"

    command: str = Field(..., min_length=1, alias="local")

    def _detail(self) -> str:
        return self.command


class ControlPlaneStep(_StepBase):
    """Command run inside a control-plane node."""
    kind: ClassVar[str] = "control-plane"

    command: str = Field(..., min_length=1, alias="control-plane")

    def _detail(self) -> str:
        return self.command


class WorkerStep(_StepBase):
    """Command run inside a worker node. Declared, but not dispatchable yet."""
    kind: ClassVar[str] = "worker"

    command: str = Field(..., min_length=1, alias="worker")

    def _detail(self) -> str:
        return self.command


class TransferStep(_StepBase):
    """Copy of a local file onto a named node."""
    kind: ClassVar[str] = "transfer"

    source: str = Field(..., min_length=1)
    dest: str = Field(..., min_length=1)
    target: str = Field("control-plane", description="Node to copy onto")

    @model_validator(mode="before")
    @classmethod
    def unpack_transfer_block(cls, data: Any) -> Any:
        """Flatten the YAML form ``{transfer: {source, dest, target}, background}``."""
        if isinstance(data, dict) and "transfer" in data:
            block = data["transfer"]
            if not isinstance(block, dict):
                raise ValueError("transfer must be a mapping with source, dest and target")
            flattened = dict(block)
            if "background" in data:
                flattened["background"] = data["background"]
            return flattened
        return data

    def _detail(self) -> str:
        return f"{self.source} -> {self.target}:{self.dest}"


def _step_variant(value: Any) -> Optional[str]:
    """Pick the step variant tag; None when zero or several are populated."""
    if isinstance(value, _StepBase):
        return value.kind
    if not isinstance(value, dict):
        return None
    present = [key for key in STEP_KEYS if value.get(key)]
    if len(present) != 1:
        return None
    return present[0]


Step = Annotated[
    Union[
        Annotated[LocalStep, Tag("local")],
        Annotated[ControlPlaneStep, Tag("control-plane")],
        Annotated[WorkerStep, Tag("worker")],
        Annotated[TransferStep, Tag("transfer")],
    ],
    Discriminator(
        _step_variant,
        custom_error_type="step_variant",
        custom_error_message=(
            "step must set exactly one of: local, control-plane, worker, transfer"
        ),
    ),
]


class Scenario(BaseModel):
    """Complete chaos scene definition."""
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "requirements": {"kubernetes-version": "v1.19.2"},
                "setup": [
                    {"local": "kubectl scale deployments.apps -n kube-system coredns --replicas=1"},
                    {"control-plane": "while true; do mktemp; done", "background": True},
                ],
            }
        },
    )

    requirements: Requirements
    steps: List[Step] = Field(
        default_factory=list,
        validation_alias=AliasChoices("setup", "steps"),
        description="Ordered steps; order is preserved verbatim",
    )

    @property
    def background_count(self) -> int:
        return sum(1 for step in self.steps if step.background)


def _format_validation_error(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "<root>"
        lines.append(f"{loc}: {err['msg']}")
    return "; ".join(lines)


def parse_scenario(data: Any, source: str = "<memory>") -> Scenario:
    """
    Validate already-parsed YAML data into a Scenario.

    Raises:
        ConfigurationError: If the data does not describe a valid scene
    """
    if data is None:
        raise ConfigurationError(f"Empty scene file: {source}", context={"path": source})
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Scene {source} must be a mapping, got {type(data).__name__}",
            context={"path": source},
        )
    try:
        return Scenario.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid scene {source}: {_format_validation_error(e)}",
            context={"path": source, "error_count": e.error_count()},
        ) from e


def find_scene_file(scene_dir: Union[str, Path]) -> Path:
    """
    Locate the scene file inside a scene directory.

    Raises:
        ConfigurationError: If the directory or scene file is missing
    """
    scene_dir = Path(scene_dir)
    if not scene_dir.is_dir():
        raise ConfigurationError(
            f"Scene directory not found: {scene_dir}", context={"path": str(scene_dir)}
        )
    for name in SCENE_FILE_NAMES:
        candidate = scene_dir / name
        if candidate.is_file():
            logger.debug(f"Found scene file: {candidate}")
            return candidate
    raise ConfigurationError(
        f"No {' or '.join(SCENE_FILE_NAMES)} in {scene_dir}",
        context={"path": str(scene_dir)},
    )


def load_scenario(scene_dir: Union[str, Path]) -> Scenario:
    """
    Load and validate the scene stored in a scene directory.

    Args:
        scene_dir: Directory holding scene.yaml plus any files it references

    Returns:
        Validated Scenario object

    Raises:
        ConfigurationError: If the file is missing, not YAML, or invalid
    """
    path = find_scene_file(scene_dir)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Scene {path} is not valid YAML: {e}", context={"path": str(path)}
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Unable to read scene {path}: {e}", context={"path": str(path)}
        ) from e

    scenario = parse_scenario(data, source=str(path))
    logger.info(
        f"Loaded scene {path}: {len(scenario.steps)} steps "
        f"({scenario.background_count} background)"
    )
    return scenario


def summarize_scenario(scenario: Scenario) -> Dict[str, Any]:
    """
    Summarize a scene for logging and dry runs.

    Returns:
        Dict with requirement fields and per-variant step counts
    """
    by_kind: Dict[str, int] = {}
    for step in scenario.steps:
        by_kind[step.kind] = by_kind.get(step.kind, 0) + 1
    return {
        "kubernetes_version": scenario.requirements.kubernetes_version,
        "nodes": scenario.requirements.node_count,
        "step_count": len(scenario.steps),
        "background_count": scenario.background_count,
        "steps_by_kind": by_kind,
    }


# YAML Schema documentation
SCENARIO_SCHEMA = """
scene.yaml schema:

requirements:
  kubernetes-version: str (required)   e.g. v1.19.2
  control-planes: int (default: 1)
  workers: int (default: 0)
  cni: str (default: backend default)

setup: ordered list, each entry sets exactly one of
  local: str            shell command on this machine (run with sh -c)
  control-plane: str    command run on the control-plane node
  worker: str           reserved, rejected at run time
  transfer:             copy a file onto a node
    source: str         relative paths resolve against the scene directory
    dest: str
    target: str         control-plane (default) or a node name
  background: bool (default: false)
                        keep going without waiting; krunk then stays alive
                        until interrupted
"""
