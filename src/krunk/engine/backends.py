"""
Target backends: how each kind of cluster is started, entered and copied to.

A backend only builds Invocations. Nothing here starts a process.
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Dict, List, Optional, Type

from krunk.core.error_handling import ConfigurationError
from krunk.engine.executor import Invocation
from krunk.scenario.schema import Requirements

logger = logging.getLogger(__name__)

# Transfer target that always means "the backend's control-plane node"
CONTROL_PLANE_TARGET = "control-plane"


class TargetBackend(ABC):
    """Command syntax for one cluster flavour."""

    name: ClassVar[str] = ""

    @property
    @abstractmethod
    def control_plane_node(self) -> str:
        """Node name of the primary control-plane node."""

    def resolve_node(self, target: str) -> str:
        """Map a scene transfer target to a node name this backend understands."""
        if not target or target == CONTROL_PLANE_TARGET:
            return self.control_plane_node
        return target

    @abstractmethod
    def provision(self, requirements: Requirements) -> Invocation:
        """Command that brings up (or validates) a cluster meeting requirements."""

    @abstractmethod
    def exec_on(self, node: str, command: str) -> Invocation:
        """Command that runs a shell command on a node."""

    @abstractmethod
    def copy_to(self, source: str, node: str, dest: str) -> Invocation:
        """Command that copies a local file onto a node."""


class MinikubeBackend(TargetBackend):
    """minikube profile; nodes are named <profile>, <profile>-m02, ..."""

    name = "minikube"

    def __init__(self, profile: Optional[str] = None):
        self.profile = profile or "minikube"

    @property
    def control_plane_node(self) -> str:
        return self.profile

    def _profile_args(self) -> List[str]:
        if self.profile == "minikube":
            return []
        return ["-p", self.profile]

    def provision(self, requirements: Requirements) -> Invocation:
        args = ["start", "--kubernetes-version", requirements.kubernetes_version]
        if requirements.node_count > 1:
            args += ["--nodes", str(requirements.node_count)]
        if requirements.cni:
            args += ["--cni", requirements.cni]
        return Invocation("minikube", tuple(args + self._profile_args()))

    def exec_on(self, node: str, command: str) -> Invocation:
        args = ["ssh"] + self._profile_args()
        if node != self.control_plane_node:
            args += ["-n", node]
        return Invocation("minikube", tuple(args + [command]))

    def copy_to(self, source: str, node: str, dest: str) -> Invocation:
        return Invocation(
            "minikube", tuple(["cp"] + self._profile_args() + [source, f"{node}:{dest}"])
        )


class _DockerNodeBackend(TargetBackend):
    """Backends whose nodes are local docker containers."""

    def exec_on(self, node: str, command: str) -> Invocation:
        return Invocation("docker", ("exec", node, "sh", "-c", command))

    def copy_to(self, source: str, node: str, dest: str) -> Invocation:
        return Invocation("docker", ("cp", source, f"{node}:{dest}"))


class KindBackend(_DockerNodeBackend):
    """kind cluster; the control plane runs in container <name>-control-plane."""

    name = "kind"

    def __init__(self, cluster_name: Optional[str] = None):
        self.cluster_name = cluster_name or "kind"

    @property
    def control_plane_node(self) -> str:
        return f"{self.cluster_name}-control-plane"

    def provision(self, requirements: Requirements) -> Invocation:
        if requirements.node_count > 1 or requirements.cni:
            # kind only takes topology and CNI settings from a config file
            logger.warning(
                f"kind backend ignores node counts and cni for {self.cluster_name}; "
                f"creating a single-node cluster",
                extra={"requirements": requirements.model_dump()},
            )
        return Invocation(
            "kind",
            (
                "create", "cluster",
                "--name", self.cluster_name,
                "--image", f"kindest/node:{requirements.kubernetes_version}",
            ),
        )


class K3dBackend(_DockerNodeBackend):
    """k3d cluster; servers run in containers k3d-<name>-server-N."""

    name = "k3d"

    def __init__(self, cluster_name: Optional[str] = None):
        self.cluster_name = cluster_name or "k3s-default"

    @property
    def control_plane_node(self) -> str:
        return f"k3d-{self.cluster_name}-server-0"

    def provision(self, requirements: Requirements) -> Invocation:
        args = [
            "cluster", "create", self.cluster_name,
            "--image", f"rancher/k3s:{requirements.kubernetes_version}-k3s1",
            "--servers", str(requirements.control_planes),
            "--agents", str(requirements.workers),
        ]
        if requirements.cni:
            logger.warning(f"k3d backend ignores cni={requirements.cni}")
        return Invocation("k3d", tuple(args))


class RemoteBackend(TargetBackend):
    """Existing cluster reached over ssh; kubectl must already point at it."""

    name = "remote"

    def __init__(self, host: Optional[str] = None):
        if not host:
            raise ConfigurationError(
                "--remote-host is required for the remote target",
                context={"target": self.name},
            )
        self.host = host

    @property
    def control_plane_node(self) -> str:
        return self.host

    def provision(self, requirements: Requirements) -> Invocation:
        # A remote cluster is not created, only checked for reachability
        return Invocation("kubectl", ("version",))

    def exec_on(self, node: str, command: str) -> Invocation:
        return Invocation("ssh", (node, command))

    def copy_to(self, source: str, node: str, dest: str) -> Invocation:
        return Invocation("scp", (source, f"{node}:{dest}"))


BACKENDS: Dict[str, Type[TargetBackend]] = {
    MinikubeBackend.name: MinikubeBackend,
    KindBackend.name: KindBackend,
    K3dBackend.name: K3dBackend,
    RemoteBackend.name: RemoteBackend,
}


def get_backend(
    target: str,
    cluster_name: Optional[str] = None,
    remote_host: Optional[str] = None,
) -> TargetBackend:
    """
    Build the backend selected by --target.

    Args:
        target: One of BACKENDS
        cluster_name: minikube profile or kind/k3d cluster name
        remote_host: ssh destination for the remote target

    Raises:
        ConfigurationError: Unknown target or missing remote host
    """
    if target == RemoteBackend.name:
        return RemoteBackend(remote_host)
    backend_cls = BACKENDS.get(target)
    if backend_cls is None:
        raise ConfigurationError(
            f"Unknown target {target!r}; expected one of {sorted(BACKENDS)}",
            context={"target": target},
        )
    return backend_cls(cluster_name)
