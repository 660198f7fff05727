"""
krunk command-line entry point.

Usage:
    krunk --scene scenarios/005
    krunk --target kind --cluster-name chaos --timeout 10m --scene scenarios/005
    krunk --target remote --remote-host admin@cp-1 --scene scenarios/005 --dry-run
"""

import argparse
import asyncio
import logging
import signal
from typing import List, Optional, Sequence

from krunk.config import RunConfig, env_defaults
from krunk.core.error_handling import (
    ConfigurationError,
    StepExecutionError,
    classify_error,
    log_error,
)
from krunk.engine import (
    BACKENDS,
    CommandExecutor,
    ProcessOutcome,
    RequirementProvisioner,
    ScenarioRunner,
    StepDispatcher,
    TargetBackend,
    get_backend,
    EXIT_CONFIGURATION_ERROR,
    EXIT_OK,
)
from krunk.logging_config import bind_context, get_logger, setup_logging
from krunk.scenario import SCENARIO_SCHEMA, Scenario, load_scenario, summarize_scenario

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def build_parser() -> argparse.ArgumentParser:
    defaults = env_defaults()
    p = argparse.ArgumentParser(
        prog="krunk",
        description="Run a declarative chaos scene against a test cluster.",
        epilog=SCENARIO_SCHEMA,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--target", default=defaults["target"], choices=sorted(BACKENDS),
                   help="What kind of cluster to target (default: %(default)s)")
    p.add_argument("--scene",
                   help="Directory containing scene.yaml; relative paths in the scene resolve against it")
    p.add_argument("--timeout", default=defaults["timeout"],
                   help="Maximum time a single command can take, e.g. 6m, 90s (default: %(default)s)")
    p.add_argument("--remote-host", default=defaults["remote_host"],
                   help="ssh destination of the control-plane node (remote target only)")
    p.add_argument("--cluster-name", default=defaults["cluster_name"],
                   help="minikube profile or kind/k3d cluster name")
    p.add_argument("--skip-provision", action="store_true",
                   help="Assume the cluster already meets the scene requirements")
    p.add_argument("--dry-run", action="store_true",
                   help="Print the commands the scene resolves to and exit")
    p.add_argument("--log-level", default=defaults["log_level"], type=str.upper,
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    p.add_argument("--log-format", default=defaults["log_format"], choices=["console", "json"])
    return p


def plan_lines(scenario: Scenario, backend: TargetBackend, dispatcher: StepDispatcher,
               skip_provision: bool = False) -> List[str]:
    """Render the resolved commands of a scene, one line per command."""
    lines = []
    if not skip_provision:
        lines.append(f"provision: {backend.provision(scenario.requirements)}")
    for index, step in enumerate(scenario.steps):
        marker = " &" if step.background else ""
        try:
            lines.append(f"step {index}: {dispatcher.resolve(step)}{marker}")
        except StepExecutionError as e:
            lines.append(f"step {index}: <{e.kind.value}: {e.message}>{marker}")
    return lines


async def run_scenario(config: RunConfig, scenario: Scenario, backend: TargetBackend) -> ProcessOutcome:
    """Run a loaded scene with SIGINT/SIGTERM wired to a clean shutdown."""
    executor = CommandExecutor()
    dispatcher = StepDispatcher(backend, config.scene_dir)
    provisioner = None if config.skip_provision else RequirementProvisioner(backend, executor)
    runner = ScenarioRunner(dispatcher, executor, config.timeout, provisioner)

    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, runner.request_shutdown)
    try:
        return await runner.execute(scenario)
    finally:
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Environment defaults bypass argparse choices, so validate before logging is set up
    try:
        config = RunConfig.from_options(
            args.scene,
            target=args.target,
            timeout=args.timeout,
            remote_host=args.remote_host,
            cluster_name=args.cluster_name,
            skip_provision=args.skip_provision,
            dry_run=args.dry_run,
            log_level=args.log_level,
            log_format=args.log_format,
        )
    except ConfigurationError as e:
        setup_logging()
        log_error(classify_error(e, "cli"), logger)
        return EXIT_CONFIGURATION_ERROR

    setup_logging(config.log_level, config.log_format)
    log = get_logger(__name__)

    try:
        scenario = load_scenario(config.scene_dir)
        backend = get_backend(config.target, config.cluster_name, config.remote_host)
    except ConfigurationError as e:
        log_error(classify_error(e, "cli"), logger)
        return EXIT_CONFIGURATION_ERROR

    bind_context(scene=str(config.scene_dir), target=config.target)
    log.info("scene_loaded", timeout_s=config.timeout, **summarize_scenario(scenario))

    if config.dry_run:
        dispatcher = StepDispatcher(backend, config.scene_dir)
        print("Planned commands:")
        for line in plan_lines(scenario, backend, dispatcher, config.skip_provision):
            print(f"  {line}")
        return EXIT_OK

    try:
        outcome = asyncio.run(run_scenario(config, scenario, backend))
    except ConfigurationError as e:
        log_error(classify_error(e, "cli"), logger)
        return EXIT_CONFIGURATION_ERROR

    log.info("run_finished", **{k: v for k, v in outcome.to_dict().items() if k != "error"})
    return outcome.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
