"""CLI entry point for slashoor."""

import asyncio
import logging
import signal
import sys
from typing import Any, Optional

import click

from .beacon import RemoteBeaconClient
from .config import Config
from .exceptions import ConfigError, FetchError, ScriptError, SubscriptionError
from .metrics import SlashingMetrics, start_metrics_server
from .slashings import HeadSlashingService, Notifier
from .version import get_version

# Validator index passed to scripts by `slashoor test-scripts`.
TEST_VALIDATOR_INDEX = 12345678


def setup_logging(level: str, log_file: str = "") -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        filename=log_file or None,
    )
    if level.upper() != "DEBUG":
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def config_options(f):
    """Options shared by every command that needs configuration."""
    options = [
        click.option(
            "--config",
            "config_path",
            type=click.Path(exists=True, dir_okay=False),
            help="Path to YAML configuration file",
            envvar="SLASHOOR_CONFIG",
        ),
        click.option(
            "--beacon-node-url",
            help="Beacon API URL of the beacon node to watch (e.g., http://localhost:5052)",
            envvar="SLASHOOR_BEACON_NODE_URL",
        ),
        click.option(
            "--beacon-node-timeout",
            type=float,
            help="Timeout in seconds for beacon node requests (default 120)",
            envvar="SLASHOOR_BEACON_NODE_TIMEOUT",
        ),
        click.option(
            "--attester-slashed-script",
            help="Script to run when an attester is slashed",
            envvar="SLASHOOR_ATTESTER_SLASHED_SCRIPT",
        ),
        click.option(
            "--proposer-slashed-script",
            help="Script to run when a proposer is slashed",
            envvar="SLASHOOR_PROPOSER_SLASHED_SCRIPT",
        ),
        click.option(
            "--metrics-port",
            type=int,
            help="Port for the Prometheus metrics server (disabled if not set)",
            envvar="SLASHOOR_METRICS_PORT",
        ),
        click.option(
            "--log-level",
            type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
            help="Logging level (default INFO)",
            envvar="SLASHOOR_LOG_LEVEL",
        ),
        click.option(
            "--log-file",
            type=click.Path(dir_okay=False),
            help="Append log output to this file instead of stderr",
            envvar="SLASHOOR_LOG_FILE",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def load_config(
    config_path: Optional[str],
    require_beacon_node: bool = True,
    **options: Any,
) -> Config:
    """Build and validate the configuration; exits with a message on error."""
    try:
        if config_path:
            config = Config.from_yaml(config_path, **options)
        else:
            config = Config(**{k: v for k, v in options.items() if v is not None})
        return config.validate(require_beacon_node=require_beacon_node)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def build_notifier(config: Config, metrics: Optional[SlashingMetrics] = None) -> Notifier:
    return Notifier(
        attester_slashed_script=config.attester_slashed_script,
        proposer_slashed_script=config.proposer_slashed_script,
        metrics=metrics,
        log=logging.getLogger("slashoor.slashings.notifier"),
    )


@click.group()
@click.version_option(package_name="slashoor")
def cli():
    """Slashoor - watch the beacon chain head for slashings."""
    pass


@cli.command()
@config_options
def run(config_path: Optional[str], **options: Any):
    """Watch head blocks for slashings until interrupted."""
    config = load_config(config_path, **options)
    setup_logging(config.log_level, config.log_file)
    logger = logging.getLogger(__name__)

    logger.info(f"Starting slashoor {get_version()}")
    logger.info(f"  Beacon node: {config.beacon_node_url}")
    if config.attester_slashed_script:
        logger.info(f"  Attester slashed script: {config.attester_slashed_script}")
    if config.proposer_slashed_script:
        logger.info(f"  Proposer slashed script: {config.proposer_slashed_script}")
    if config.metrics_port is not None:
        logger.info(f"  Metrics: port {config.metrics_port}")

    try:
        asyncio.run(run_service(config))
    except (ConfigError, SubscriptionError) as e:
        logger.error(f"Failed to start slashings service: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down")
        sys.exit(0)


async def run_service(config: Config) -> None:
    """Run the head slashings service until SIGINT or SIGTERM."""
    logger = logging.getLogger(__name__)

    metrics: Optional[SlashingMetrics] = None
    if config.metrics_port is not None:
        metrics = SlashingMetrics()
        start_metrics_server(config.metrics_port, registry=metrics.registry)
        metrics.set_release(get_version())
        metrics.set_ready(False)
    else:
        logger.debug("No metrics port supplied; metrics not recorded")

    client = RemoteBeaconClient(config.beacon_node_url, timeout=config.beacon_node_timeout)
    service = HeadSlashingService(
        client,
        notifier=build_notifier(config, metrics),
        metrics=metrics,
        log=logging.getLogger("slashoor.slashings.service"),
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await service.start()
        if metrics is not None:
            metrics.set_ready(True)
        logger.info("All services operational")
        await stop.wait()
        logger.info("Stopping slashoor")
    finally:
        await service.stop()
        await client.close()


@cli.command("test-scripts")
@config_options
def test_scripts(config_path: Optional[str], **options: Any):
    """Run the configured scripts once with a test validator index."""
    config = load_config(config_path, require_beacon_node=False, **options)
    setup_logging(config.log_level, config.log_file)
    notifier = build_notifier(config)

    checks = [
        ("attester", config.attester_slashed_script, notifier.on_attester_slashed),
        ("proposer", config.proposer_slashed_script, notifier.on_proposer_slashed),
    ]
    for name, script, run_script in checks:
        if not script:
            click.echo(f"No {name} slashing script")
            continue
        click.echo(
            f"Testing {name} slashing script with validator index {TEST_VALIDATOR_INDEX}"
        )
        try:
            output = asyncio.run(run_script(TEST_VALIDATOR_INDEX))
        except ScriptError as e:
            click.echo(f"{name.capitalize()} slashing script failed: {e}")
            if e.output:
                click.echo(e.output)
            return
        if output:
            click.echo(output)


@cli.command("test-block")
@click.argument("block_id")
@config_options
def test_block(block_id: str, config_path: Optional[str], **options: Any):
    """Check a single block (root, slot or 'head') for slashings and exit."""
    config = load_config(config_path, **options)
    setup_logging(config.log_level, config.log_file)

    try:
        events = asyncio.run(replay_block(config, block_id))
    except FetchError as e:
        raise click.ClickException(str(e)) from e

    if not events:
        click.echo(f"No slashings in block {block_id}")
    for event in events:
        click.echo(f"Validator {event.validator_index} slashed ({event.kind.value})")


async def replay_block(config: Config, block_id: str):
    client = RemoteBeaconClient(config.beacon_node_url, timeout=config.beacon_node_timeout)
    try:
        service = HeadSlashingService(
            client,
            notifier=build_notifier(config),
            log=logging.getLogger("slashoor.slashings.service"),
        )
        return await service.replay(block_id)
    finally:
        await client.close()


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
