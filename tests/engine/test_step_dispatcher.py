"""Tests for step → invocation resolution."""

from pathlib import Path

import pytest

from krunk.core.error_handling import ConfigurationError, ErrorKind, StepExecutionError
from krunk.engine.backends import KindBackend
from krunk.engine.dispatcher import StepDispatcher
from krunk.scenario.schema import ControlPlaneStep, LocalStep, TransferStep, WorkerStep


class TestStepDispatcher:
    """Test StepDispatcher.resolve"""

    def test_local_step_runs_through_shell(self, dispatcher, tmp_path):
        inv = dispatcher.resolve(LocalStep(command="kubectl get pods | wc -l"))
        assert inv.argv == ("sh", "-c", "kubectl get pods | wc -l")
        assert inv.cwd == tmp_path.resolve()

    def test_control_plane_step(self, dispatcher):
        inv = dispatcher.resolve(ControlPlaneStep(command="while true; do mktemp; done"))
        assert inv.argv == ("minikube", "ssh", "while true; do mktemp; done")

    def test_control_plane_step_other_backend(self, tmp_path):
        dispatcher = StepDispatcher(KindBackend(), tmp_path)
        inv = dispatcher.resolve(ControlPlaneStep(command="id"))
        assert inv.argv == ("docker", "exec", "kind-control-plane", "sh", "-c", "id")

    def test_transfer_relative_source_anchored(self, dispatcher, tmp_path):
        step = TransferStep(source="resolver.crontab", dest="/etc/cron.d/resolver")
        inv = dispatcher.resolve(step)
        expected_source = str(tmp_path.resolve() / "resolver.crontab")
        assert inv.argv == ("minikube", "cp", expected_source, "minikube:/etc/cron.d/resolver")

    def test_transfer_absolute_source_untouched(self, dispatcher):
        step = TransferStep(source="/opt/payload.sh", dest="/tmp/payload.sh", target="minikube-m02")
        inv = dispatcher.resolve(step)
        assert inv.argv == ("minikube", "cp", "/opt/payload.sh", "minikube-m02:/tmp/payload.sh")

    def test_relative_base_path_is_resolved(self, minikube_backend, tmp_path, monkeypatch):
        (tmp_path / "scenes" / "005").mkdir(parents=True)
        monkeypatch.chdir(tmp_path)
        dispatcher = StepDispatcher(minikube_backend, "scenes/005")
        monkeypatch.chdir("/")
        # Anchoring does not depend on the cwd at resolve time
        inv = dispatcher.resolve(TransferStep(source="a.txt", dest="/a.txt"))
        assert Path(inv.args[1]) == (tmp_path / "scenes" / "005" / "a.txt").resolve()

    def test_no_base_path(self, minikube_backend):
        dispatcher = StepDispatcher(minikube_backend)
        inv = dispatcher.resolve(TransferStep(source="a.txt", dest="/a.txt"))
        assert inv.args[1] == "a.txt"
        assert inv.cwd is None

    def test_worker_step_unsupported(self, dispatcher):
        with pytest.raises(StepExecutionError) as exc_info:
            dispatcher.resolve(WorkerStep(command="uptime"))
        assert exc_info.value.kind is ErrorKind.UNSUPPORTED_VARIANT
        assert exc_info.value.component == "dispatcher"

    def test_not_a_step(self, dispatcher):
        with pytest.raises(ConfigurationError):
            dispatcher.resolve({"local": "true"})

    def test_resolve_is_pure(self, dispatcher, tmp_path):
        """Resolution does not require the referenced files to exist."""
        step = TransferStep(source="missing.txt", dest="/x")
        assert dispatcher.resolve(step) == dispatcher.resolve(step)
        assert not (tmp_path / "missing.txt").exists()
