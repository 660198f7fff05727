"""
ScenarioRunner - sequences a scene's steps and decides the run outcome.

State machine:
NOT_STARTED → PROVISIONING → RUNNING → COMPLETED_CLEAN
                   ↓            ↓  ↘
                ABORTED      ABORTED  LIVE_INDEFINITE → INTERRUPTED

PROVISIONING and RUNNING can also move to INTERRUPTED when shutdown is
requested. LIVE_INDEFINITE has no exit other than INTERRUPTED.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Set

from krunk.core.error_handling import (
    KrunkException,
    ProvisioningFailure,
    StateTransitionError,
    StepExecutionError,
    ErrorKind,
    classify_error,
    log_error,
)
from krunk.engine.dispatcher import StepDispatcher
from krunk.engine.executor import CommandExecutor, ExecutionResult
from krunk.engine.provisioner import RequirementProvisioner
from krunk.scenario.schema import Scenario, Step

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PROVISIONING_FAILED = 1
EXIT_STEP_FAILED = 2
EXIT_CONFIGURATION_ERROR = 3
EXIT_INTERRUPTED = 130


class RunState(Enum):
    """Scenario run states."""
    NOT_STARTED = auto()
    PROVISIONING = auto()
    RUNNING = auto()
    ABORTED = auto()
    LIVE_INDEFINITE = auto()
    COMPLETED_CLEAN = auto()
    INTERRUPTED = auto()


# Valid state transitions
TRANSITIONS: Dict[RunState, List[RunState]] = {
    RunState.NOT_STARTED: [RunState.PROVISIONING, RunState.RUNNING],  # RUNNING when provisioning is skipped
    RunState.PROVISIONING: [RunState.RUNNING, RunState.ABORTED, RunState.INTERRUPTED],
    RunState.RUNNING: [
        RunState.ABORTED,
        RunState.LIVE_INDEFINITE,
        RunState.COMPLETED_CLEAN,
        RunState.INTERRUPTED,
    ],
    RunState.LIVE_INDEFINITE: [RunState.INTERRUPTED],
    RunState.ABORTED: [],
    RunState.COMPLETED_CLEAN: [],
    RunState.INTERRUPTED: [],
}


@dataclass
class ProcessOutcome:
    """How a run ended and what the process should exit with."""
    state: RunState
    exit_code: int
    steps_completed: int = 0
    background_launched: int = 0
    failed_step: Optional[int] = None
    step_exit_code: Optional[int] = None
    error: Optional[KrunkException] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.name,
            "exit_code": self.exit_code,
            "steps_completed": self.steps_completed,
            "background_launched": self.background_launched,
            "failed_step": self.failed_step,
            "step_exit_code": self.step_exit_code,
            "error": self.error.to_dict() if self.error is not None else None,
        }


class _Interrupted(Exception):
    """Shutdown was requested while the run was in progress."""


class ScenarioRunner:
    """
    Runs a scene: provisioning once, then every step in declared order.

    Foreground steps block the sequence and abort it on failure. Background
    steps are detached tasks whose failures are only logged; launching any
    of them makes the run stay alive until request_shutdown() is called.
    """

    def __init__(
        self,
        dispatcher: StepDispatcher,
        executor: CommandExecutor,
        step_timeout: float,
        provisioner: Optional[RequirementProvisioner] = None,
    ):
        """
        Args:
            dispatcher: Resolves steps into invocations
            executor: Runs invocations
            step_timeout: Deadline in seconds for every single invocation
            provisioner: Requirement provisioner; None skips provisioning
        """
        self.dispatcher = dispatcher
        self.executor = executor
        self.step_timeout = step_timeout
        self.provisioner = provisioner

        self._state = RunState.NOT_STARTED
        self._history: List[RunState] = [RunState.NOT_STARTED]
        self._shutdown: Optional[asyncio.Event] = None
        self._shutdown_requested = False
        self._background: Set[asyncio.Task] = set()
        self.background_launched = 0
        self.steps_completed = 0

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def history(self) -> List[RunState]:
        """States visited so far, oldest first."""
        return self._history.copy()

    @property
    def live_background(self) -> int:
        """Background tasks that have not finished yet."""
        return sum(1 for task in self._background if not task.done())

    def _transition(self, to_state: RunState):
        if to_state not in TRANSITIONS.get(self._state, []):
            raise StateTransitionError(
                f"Invalid transition: {self._state.name} → {to_state.name}. "
                f"Valid transitions: {[s.name for s in TRANSITIONS.get(self._state, [])]}",
                component="runner",
            )
        logger.debug(f"Runner state {self._state.name} → {to_state.name}")
        self._state = to_state
        self._history.append(to_state)

    def request_shutdown(self):
        """Ask a running (or idling) scene to stop. Safe to call from signal handlers."""
        self._shutdown_requested = True
        if self._shutdown is not None:
            self._shutdown.set()

    async def execute(self, scenario: Scenario) -> ProcessOutcome:
        """
        Run the scene to a terminal state.

        Returns:
            ProcessOutcome; never returns while background steps keep the
            scene live, until request_shutdown() is called
        """
        if self._state is not RunState.NOT_STARTED:
            raise StateTransitionError(
                f"Runner already used (state {self._state.name})", component="runner"
            )
        self._shutdown = asyncio.Event()
        if self._shutdown_requested:
            self._shutdown.set()

        try:
            return await self._execute(scenario)
        except _Interrupted:
            logger.warning(
                f"Interrupted in state {self._state.name}, stopping "
                f"{self.live_background} background step(s)"
            )
            self._transition(RunState.INTERRUPTED)
            return self._outcome(EXIT_INTERRUPTED)
        finally:
            await self._stop_background()

    async def _execute(self, scenario: Scenario) -> ProcessOutcome:
        if self.provisioner is not None:
            self._transition(RunState.PROVISIONING)
            try:
                await self._interruptible(
                    self.provisioner.ensure(scenario.requirements, self.step_timeout)
                )
            except ProvisioningFailure as e:
                log_error(classify_error(e, "provisioner"), logger)
                self._transition(RunState.ABORTED)
                return self._outcome(EXIT_PROVISIONING_FAILED, error=e)
        else:
            logger.info("Skipping provisioning", extra={"requirements": scenario.requirements.model_dump()})

        self._transition(RunState.RUNNING)
        total = len(scenario.steps)
        for index, step in enumerate(scenario.steps):
            logger.info(f"Running step {index + 1} of {total}: {step.describe()}")
            if step.background:
                self._launch_background(index, step)
                continue

            try:
                await self._interruptible(self._run_step(step))
            except StepExecutionError as e:
                logger.error(
                    f"step {index} failed: {e}",
                    extra={"step": index, "kind": e.kind.value, "argv": list(e.argv)},
                )
                self._transition(RunState.ABORTED)
                step_exit_code = e.exit_code if e.kind is ErrorKind.NON_ZERO_EXIT else None
                return self._outcome(
                    EXIT_STEP_FAILED, failed_step=index, step_exit_code=step_exit_code, error=e
                )
            self.steps_completed += 1

        if self.background_launched == 0:
            self._transition(RunState.COMPLETED_CLEAN)
            logger.info(f"Scenario complete: {self.steps_completed} step(s) succeeded")
            return self._outcome(EXIT_OK)

        self._transition(RunState.LIVE_INDEFINITE)
        logger.info(
            "Scenario is live! Hit Ctrl-C to abort.",
            extra={"background_launched": self.background_launched},
        )
        await self._shutdown.wait()
        raise _Interrupted()

    async def _run_step(self, step: Step) -> ExecutionResult:
        invocation = self.dispatcher.resolve(step)
        return await self.executor.run(invocation, self.step_timeout)

    async def _interruptible(self, coro):
        """Await coro unless shutdown is requested first, in which case cancel it."""
        work = asyncio.ensure_future(coro)
        stop = asyncio.ensure_future(self._shutdown.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            stop.cancel()
            raise
        if work.done():
            stop.cancel()
            return work.result()
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise _Interrupted()

    def _launch_background(self, index: int, step: Step):
        task = asyncio.create_task(
            self._run_background(index, step), name=f"krunk-step-{index}"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        self.background_launched += 1

    async def _run_background(self, index: int, step: Step):
        logger.info(f"Running in background: {step.describe()}", extra={"step": index})
        try:
            await self._run_step(step)
        except KrunkException as e:
            log_error(classify_error(e, f"background step {index}"), logger)
        except Exception:
            logger.exception(f"background step {index} crashed")
        else:
            logger.info(f"background step {index} finished", extra={"step": index})

    async def _stop_background(self):
        tasks = [task for task in self._background if not task.done()]
        if not tasks:
            return
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Stopped {len(tasks)} background step(s)")

    def _outcome(self, exit_code: int, **kwargs) -> ProcessOutcome:
        return ProcessOutcome(
            state=self._state,
            exit_code=exit_code,
            steps_completed=self.steps_completed,
            background_launched=self.background_launched,
            **kwargs,
        )
