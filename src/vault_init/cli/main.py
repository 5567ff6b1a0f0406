import typer
from pathlib import Path
from typing import Optional

from vault_init.cli.formatter import OutputFormatter
from vault_init.config.loader import DEFAULT_CONFIG_NAME
from vault_init.core.context import BootstrapContext, build_context
from vault_init.runtime.health import HealthProbe, ProbeFailure
from vault_init.runtime.orchestrator import BootstrapOrchestrator, decide
from vault_init.runtime.shutdown import ShutdownCoordinator
from vault_init.utils.errors import VaultInitError

app = typer.Typer(
    name="vault-init",
    help="Initialise a Vault instance and store its encrypted root token.",
    rich_markup_mode=None,
)


def _resolve_optional_bool_flag(enabled: bool, disabled: bool, flag_name: str) -> Optional[bool]:
    if enabled and disabled:
        raise typer.BadParameter(f"Cannot use --{flag_name} and --no-{flag_name} together.")
    if enabled:
        return True
    if disabled:
        return False
    return None


def _read_option_value(tokens: list[str], index: int, option_name: str) -> tuple[str, int]:
    if index + 1 >= len(tokens):
        raise typer.BadParameter(f"Option {option_name} requires a value.")
    return tokens[index + 1], index + 2


def _parse_interval(value: str) -> int:
    try:
        interval = int(value)
    except ValueError as exc:
        raise typer.BadParameter("Option --interval must be a whole number of seconds.") from exc
    if interval < 0:
        raise typer.BadParameter("Option --interval cannot be negative.")
    return interval


def _resolve_config_path(explicit: Optional[Path]) -> Path:
    if explicit is None:
        return Path.cwd() / DEFAULT_CONFIG_NAME
    if not explicit.exists():
        OutputFormatter.log(f"Config file not found: {explicit}", severity="error")
        raise typer.Exit(code=1)
    return explicit


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    ctx: typer.Context,
):
    """
    Initialise Vault if it has never been initialised, then go dormant.

    Waits for the Vault at VAULT_ADDR to answer its health endpoint. A Vault
    that reports itself uninitialised is initialised once (auto-unseal is
    assumed to happen during initialisation); its root token is encrypted with
    AWS KMS and uploaded to S3, from where it can be used by entities that
    need to read from or write to Vault. Any other state is left alone.
    """
    address: Optional[str] = None
    interval: Optional[int] = None
    config_path: Optional[Path] = None
    dormant = False
    no_dormant = False

    tokens = list(ctx.args)
    extras: list[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in ("--address", "-a"):
            address, index = _read_option_value(tokens, index, token)
            continue
        if token.startswith("--address="):
            address = token.split("=", 1)[1]
            index += 1
            continue
        if token in ("--interval", "-i"):
            interval_value, index = _read_option_value(tokens, index, token)
            interval = _parse_interval(interval_value)
            continue
        if token.startswith("--interval="):
            interval = _parse_interval(token.split("=", 1)[1])
            index += 1
            continue
        if token in ("--config", "-c"):
            config_value, index = _read_option_value(tokens, index, token)
            config_path = Path(config_value)
            continue
        if token.startswith("--config="):
            config_path = Path(token.split("=", 1)[1])
            index += 1
            continue
        if token == "--dormant":
            dormant = True
            index += 1
            continue
        if token == "--no-dormant":
            no_dormant = True
            index += 1
            continue
        if token.startswith("-"):
            raise typer.BadParameter(f"Unknown option: {token}")
        extras.append(token)
        index += 1

    if extras:
        raise typer.BadParameter(f"Unexpected arguments: {' '.join(extras)}")

    dormant_override = _resolve_optional_bool_flag(dormant, no_dormant, "dormant")
    effective_dormant = dormant_override if dormant_override is not None else True
    effective_config = _resolve_config_path(config_path)

    with ShutdownCoordinator() as shutdown:
        context: Optional[BootstrapContext] = None
        try:
            context = build_context(
                config_path=effective_config,
                address=address,
                interval=interval,
                shutdown=shutdown,
            )
            outcome = BootstrapOrchestrator(context).run()
        except VaultInitError as exc:
            OutputFormatter.log(str(exc), severity="critical")
            raise typer.Exit(code=1)
        finally:
            if context is not None:
                context.close()

        if outcome.cancelled:
            OutputFormatter.log("Shutdown complete.", severity="info")
            raise typer.Exit(code=0)

        if not effective_dormant:
            OutputFormatter.log("Bootstrap finished. Exiting without going dormant.", severity="info")
            raise typer.Exit(code=0)

        OutputFormatter.log("Dormant. Waiting for a termination signal.", severity="info")
        shutdown.wait_for_shutdown()
        OutputFormatter.log("Shutdown complete.", severity="info")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def status(
    ctx: typer.Context,
):
    """
    Probe Vault health once and report its lifecycle state.
    """
    address: Optional[str] = None
    config_path: Optional[Path] = None
    output_json = False

    tokens = list(ctx.args)
    extras: list[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in ("--address", "-a"):
            address, index = _read_option_value(tokens, index, token)
            continue
        if token.startswith("--address="):
            address = token.split("=", 1)[1]
            index += 1
            continue
        if token in ("--config", "-c"):
            config_value, index = _read_option_value(tokens, index, token)
            config_path = Path(config_value)
            continue
        if token.startswith("--config="):
            config_path = Path(token.split("=", 1)[1])
            index += 1
            continue
        if token == "--json":
            output_json = True
            index += 1
            continue
        if token.startswith("-"):
            raise typer.BadParameter(f"Unknown option: {token}")
        extras.append(token)
        index += 1

    if extras:
        raise typer.BadParameter(f"Unexpected arguments: {' '.join(extras)}")

    effective_config = _resolve_config_path(config_path)

    try:
        context = build_context(config_path=effective_config, address=address)
    except VaultInitError as exc:
        OutputFormatter.log(str(exc), severity="critical")
        raise typer.Exit(code=1)

    try:
        reading = HealthProbe(context.get_http_client()).read(context.vault.vault_addr)
    finally:
        context.close()

    if isinstance(reading, ProbeFailure):
        payload = {
            "address": context.vault.vault_addr,
            "state": None,
            "status_code": None,
            "action": None,
            "reason": reading.reason,
        }
    else:
        payload = {
            "address": context.vault.vault_addr,
            "state": reading.state.value,
            "status_code": reading.status_code,
            "action": decide(reading.state).value,
            "reason": None,
        }

    if output_json:
        OutputFormatter.print_data(payload)
    elif isinstance(reading, ProbeFailure):
        OutputFormatter.log(f"Vault at {context.vault.vault_addr} is not reachable: {reading.reason}", severity="error")
    else:
        typer.echo(f"{reading.state.value} (HTTP {reading.status_code})")

    if isinstance(reading, ProbeFailure):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
