"""Tests for the krunk command line."""

import logging

import pytest
import structlog

from krunk.cli import build_parser, main, plan_lines
from krunk.engine import (
    EXIT_CONFIGURATION_ERROR,
    EXIT_OK,
    EXIT_STEP_FAILED,
    MinikubeBackend,
    StepDispatcher,
)
from krunk.logging_config import HANDLER_NAME
from krunk.scenario import load_scenario


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    """main() reconfigures the root logger; put it back afterwards."""
    for name in ("KRUNK_TARGET", "KRUNK_TIMEOUT", "KRUNK_REMOTE_HOST",
                 "KRUNK_CLUSTER_NAME", "KRUNK_LOG_LEVEL", "KRUNK_LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    krunk_logger = logging.getLogger("krunk")
    root_level, krunk_level = root.level, krunk_logger.level
    krunk_logger.setLevel(logging.NOTSET)
    yield
    for handler in root.handlers[:]:
        if handler.get_name() == HANDLER_NAME:
            root.removeHandler(handler)
    root.setLevel(root_level)
    krunk_logger.setLevel(krunk_level)
    structlog.reset_defaults()


class TestParser:
    """Test flag parsing and environment defaults"""

    def test_defaults(self):
        args = build_parser().parse_args(["--scene", "scenarios/005"])
        assert args.target == "minikube"
        assert args.timeout == "6m"
        assert args.skip_provision is False
        assert args.dry_run is False
        assert args.log_level == "INFO"

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("KRUNK_TARGET", "kind")
        monkeypatch.setenv("KRUNK_TIMEOUT", "90s")
        args = build_parser().parse_args([])
        assert args.target == "kind"
        assert args.timeout == "90s"

    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("KRUNK_TARGET", "kind")
        args = build_parser().parse_args(["--target", "k3d"])
        assert args.target == "k3d"

    def test_log_level_case_insensitive(self):
        assert build_parser().parse_args(["--log-level", "debug"]).log_level == "DEBUG"

    def test_unknown_target_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--target", "gke"])


class TestPlanLines:
    """Test dry-run rendering"""

    def test_bundled_scene(self, sample_scene_dir):
        scenario = load_scenario(sample_scene_dir)
        backend = MinikubeBackend()
        lines = plan_lines(scenario, backend, StepDispatcher(backend, sample_scene_dir))

        assert lines[0] == "provision: minikube start --kubernetes-version v1.19.2"
        assert len(lines) == 8
        assert lines[3] == "step 2: sh -c 'kubectl scale deployments.apps -n kube-system coredns --replicas=1'"
        assert "resolver.crontab" in lines[5]
        assert str(sample_scene_dir.resolve()) in lines[5]
        assert lines[7] == "step 6: minikube ssh 'while true; do mktemp; done' &"

    def test_skip_provision_and_worker(self, write_scene):
        scene_dir = write_scene("""
            requirements:
              kubernetes-version: v1.19.2
            setup:
              - worker: uptime
        """)
        backend = MinikubeBackend()
        lines = plan_lines(
            load_scenario(scene_dir), backend, StepDispatcher(backend, scene_dir), skip_provision=True
        )
        assert len(lines) == 1
        assert lines[0].startswith("step 0: <unsupported_variant:")


class TestMain:
    """Test end-to-end exit codes"""

    def test_missing_scene(self):
        assert main([]) == EXIT_CONFIGURATION_ERROR

    def test_scene_directory_not_found(self, tmp_path):
        assert main(["--scene", str(tmp_path / "nope")]) == EXIT_CONFIGURATION_ERROR

    def test_invalid_timeout(self, sample_scene_dir):
        assert main(["--scene", str(sample_scene_dir), "--timeout", "soon"]) == EXIT_CONFIGURATION_ERROR

    def test_remote_without_host(self, sample_scene_dir):
        assert main(["--scene", str(sample_scene_dir), "--target", "remote"]) == EXIT_CONFIGURATION_ERROR

    @pytest.mark.parametrize("name,value", [
        ("KRUNK_LOG_LEVEL", "verbose"),
        ("KRUNK_LOG_FORMAT", "xml"),
    ])
    def test_invalid_logging_environment(self, sample_scene_dir, monkeypatch, name, value):
        """argparse does not check env defaults against choices; the config does."""
        monkeypatch.setenv(name, value)
        assert main(["--scene", str(sample_scene_dir), "--dry-run"]) == EXIT_CONFIGURATION_ERROR

    def test_invalid_scene(self, write_scene):
        scene_dir = write_scene("""
            requirements:
              kubernetes-version: v1.19.2
            setup:
              - background: true
        """)
        assert main(["--scene", str(scene_dir)]) == EXIT_CONFIGURATION_ERROR

    def test_dry_run(self, sample_scene_dir, capsys):
        code = main(["--scene", str(sample_scene_dir), "--dry-run", "--log-level", "ERROR"])
        assert code == EXIT_OK
        out = capsys.readouterr().out
        assert out.startswith("Planned commands:\n")
        assert "  provision: minikube start --kubernetes-version v1.19.2" in out

    @pytest.mark.integration
    def test_clean_run(self, write_scene):
        scene_dir = write_scene("""
            requirements:
              kubernetes-version: v1.19.2
            setup:
              - local: test -f scene.yaml
              - local: echo done
        """)
        code = main(["--scene", str(scene_dir), "--skip-provision", "--log-level", "ERROR"])
        assert code == EXIT_OK

    @pytest.mark.integration
    def test_failed_step(self, write_scene):
        scene_dir = write_scene("""
            requirements:
              kubernetes-version: v1.19.2
            setup:
              - local: exit 7
              - local: echo never
        """)
        code = main(["--scene", str(scene_dir), "--skip-provision", "--log-level", "ERROR"])
        assert code == EXIT_STEP_FAILED

    @pytest.mark.integration
    def test_json_logs(self, write_scene, capsys):
        scene_dir = write_scene("""
            requirements:
              kubernetes-version: v1.19.2
            setup:
              - local: "true"
        """)
        code = main(["--scene", str(scene_dir), "--skip-provision", "--log-format", "json"])
        assert code == EXIT_OK
        err = capsys.readouterr().err
        assert '"message": "run_finished"' in err
        assert '"state": "COMPLETED_CLEAN"' in err
