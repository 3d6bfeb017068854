import signal
import typer
from pathlib import Path
from typing import Annotated, Optional
from pydantic import ValidationError

from portico.config.loader import load_config
from portico.core.models import ControllerSettings
from portico.cli.formatter import OutputFormatter
from portico.runtime import IngressController
from portico.runtime.process import ProcessState, resolve_process
from portico.runtime.server_state import RuntimeSocketClient, ServerStateSnapshotter
from portico.runtime.supervisor import ProcessSupervisor
from portico.utils.diagnostics import ConfigurationError, PorticoError, SupervisorError, UnknownActionError
from portico.utils.log import setup_logging

app = typer.Typer(name="portico", help="Portico ingress controller", rich_markup_mode=None)

ConfigOption = Annotated[Path, typer.Option("--config", "-c", help="Path to portico.yaml.")]
CfgDirOption = Annotated[Optional[Path], typer.Option("--cfg-dir", help="HAProxy configuration directory.")]
TestOption = Annotated[
    Optional[bool],
    typer.Option("--test/--no-test", help="Dry run: log lifecycle actions instead of executing them."),
]
LogLevelOption = Annotated[Optional[str], typer.Option("--log-level", help="Log level (DEBUG, INFO, ...).")]


def _load_settings(
    config: Path,
    cfg_dir: Optional[Path] = None,
    test: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> ControllerSettings:
    try:
        return ControllerSettings.from_config_dict(
            load_config(config),
            cfg_dir=cfg_dir,
            test_mode=test,
            log_level=log_level,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid controller settings: {exc}") from exc


def _settings_or_exit(config: Path, **overrides) -> ControllerSettings:
    try:
        settings = _load_settings(config, **overrides)
    except ConfigurationError as e:
        OutputFormatter.log(f"Error: {e}", severity="critical")
        raise typer.Exit(code=1)
    setup_logging(settings.log_level)
    return settings


@app.command()
def run(
    config: ConfigOption = Path("portico.yaml"),
    cfg_dir: CfgDirOption = None,
    test: TestOption = None,
    log_level: LogLevelOption = None,
):
    """
    Start HAProxy and keep it in sync until interrupted.
    """
    settings = _settings_or_exit(config, cfg_dir=cfg_dir, test=test, log_level=log_level)
    controller = IngressController(settings)

    def _handle_signal(signum, frame):
        OutputFormatter.log(f"Received {signal.Signals(signum).name}, shutting down.", severity="warning")
        controller.shutdown()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        controller.run_forever()
    except ConfigurationError as e:
        OutputFormatter.log(f"Startup failed: {e}", severity="critical")
        raise typer.Exit(code=1)


@app.command()
def sync(
    config: ConfigOption = Path("portico.yaml"),
    cfg_dir: CfgDirOption = None,
    test: TestOption = None,
    log_level: LogLevelOption = None,
):
    """
    Run a single sync cycle against the current configuration and exit.
    """
    settings = _settings_or_exit(config, cfg_dir=cfg_dir, test=test, log_level=log_level)
    controller = IngressController(settings)

    try:
        controller.initialize()
        result = controller.reconciler.sync()
    except PorticoError as e:
        OutputFormatter.log(f"Sync failed: {e}", severity="error")
        raise typer.Exit(code=1)

    OutputFormatter.print_diagnostics(result.diagnostics)
    action = result.action.value if result.action else "none"
    outcome = result.outcome.value if result.outcome else "-"
    OutputFormatter.log(f"Sync complete: action={action} outcome={outcome}", severity="success")


@app.command()
def service(
    action: Annotated[str, typer.Argument(help="One of: start, stop, reload, restart.")],
    config: ConfigOption = Path("portico.yaml"),
    cfg_dir: CfgDirOption = None,
    test: TestOption = None,
    log_level: LogLevelOption = None,
):
    """
    Run one lifecycle action against the managed HAProxy process.
    """
    settings = _settings_or_exit(config, cfg_dir=cfg_dir, test=test, log_level=log_level)
    supervisor = ProcessSupervisor(
        config_file=settings.config_path,
        pid_file=settings.pid_file,
        binary=settings.haproxy_binary,
        snapshotter=ServerStateSnapshotter(RuntimeSocketClient(settings.runtime_socket), settings.state_dir),
        dry_run=settings.test_mode,
    )

    try:
        outcome = supervisor.service(action)
    except UnknownActionError as e:
        OutputFormatter.log(f"Error: {e}", severity="error")
        raise typer.Exit(code=2)
    except SupervisorError as e:
        OutputFormatter.log(f"Error: {e}", severity="error")
        raise typer.Exit(code=1)

    OutputFormatter.log(f"{action}: {outcome.value}", severity="success")


@app.command()
def status(
    config: ConfigOption = Path("portico.yaml"),
    cfg_dir: CfgDirOption = None,
):
    """
    Show whether the managed HAProxy process is running.
    """
    settings = _settings_or_exit(config, cfg_dir=cfg_dir)
    handle = resolve_process(settings.pid_file)
    OutputFormatter.print_process(handle)
    if handle.state != ProcessState.RUNNING:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
