"""Pytest configuration and fixtures for the krunk test suite."""
import pytest
import sys
import textwrap
from pathlib import Path
from typing import List, Optional

# Ensure src/ is importable without an editable install
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from krunk.core.error_handling import ErrorKind, StepExecutionError
from krunk.engine.backends import MinikubeBackend
from krunk.engine.dispatcher import StepDispatcher
from krunk.engine.executor import ExecutionResult, Invocation

REPO_ROOT = Path(__file__).parent.parent


# ============================================================================
# SCENE FIXTURES
# ============================================================================

@pytest.fixture
def write_scene(tmp_path):
    """Write a scene.yaml into a fresh directory and return the directory."""
    def _write(body: str, name: str = "scene.yaml") -> Path:
        scene_dir = tmp_path / "scene"
        scene_dir.mkdir(exist_ok=True)
        (scene_dir / name).write_text(textwrap.dedent(body))
        return scene_dir
    return _write


@pytest.fixture
def sample_scene_dir():
    """The bundled DNS/etcd/inode scene."""
    return REPO_ROOT / "scenarios" / "005"


# ============================================================================
# ENGINE FIXTURES
# ============================================================================

@pytest.fixture
def minikube_backend():
    return MinikubeBackend()


@pytest.fixture
def dispatcher(minikube_backend, tmp_path):
    return StepDispatcher(minikube_backend, tmp_path)


class RecordingExecutor:
    """
    Executor double that records invocations instead of starting processes.

    ``failures`` maps a substring of the joined argv to an exit code; a
    matching invocation raises NON_ZERO_EXIT with that code.
    """

    def __init__(self, failures: Optional[dict] = None):
        self.failures = failures or {}
        self.calls: List[Invocation] = []

    async def run(self, invocation: Invocation, timeout: float) -> ExecutionResult:
        self.calls.append(invocation)
        joined = " ".join(invocation.argv)
        exit_code = 0
        for needle, code in self.failures.items():
            if needle in joined:
                exit_code = code
        result = ExecutionResult(
            stdout=b"", stderr=b"", exit_code=exit_code, duration=0.0, args=invocation.argv
        )
        if exit_code != 0:
            raise StepExecutionError(ErrorKind.NON_ZERO_EXIT, invocation.argv, result=result)
        return result

    @property
    def commands(self) -> List[str]:
        return [inv.args[-1] for inv in self.calls]


@pytest.fixture
def recording_executor():
    return RecordingExecutor()


@pytest.fixture
def make_executor():
    """Factory for RecordingExecutors with scripted failures."""
    return RecordingExecutor


# ============================================================================
# PYTEST HOOKS AND CONFIGURATION
# ============================================================================

@pytest.fixture(scope='session', autouse=True)
def setup_test_environment():
    """Keep engine logs quiet unless a test asks for them."""
    import logging
    logging.getLogger('krunk').setLevel(logging.WARNING)
    yield
    _cleanup_logging_handlers()


def _cleanup_logging_handlers():
    """Clean up all logging handlers to prevent I/O errors during pytest teardown."""
    import logging

    root_logger = logging.getLogger()
    loggers = [root_logger] + [logging.getLogger(name) for name in logging.root.manager.loggerDict]

    for logger in loggers:
        for handler in logger.handlers[:]:
            try:
                handler.flush()
                handler.close()
                logger.removeHandler(handler)
            except (OSError, ValueError):
                pass

    logging.root.handlers.clear()


def pytest_configure(config):
    """Register custom marks."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that start real subprocesses"
    )
