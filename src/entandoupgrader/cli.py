import logging

import click
from rich.logging import RichHandler

from .constants import DEFAULT_POLL_INTERVAL_SECONDS, DEFAULT_WAIT_TIMEOUT_SECONDS
from .core import EntandoUpgrader, UpgraderError
from .models import TagPrecedence
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option("--entandoversion", "-v", required=False, help="The version of Entando to upgrade to")
@click.option("--namespace", "-n", required=False, help="The namespace where Entando is installed")
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to .entandoupgrader.yml if present.",
)
@click.option("--context", required=False, help="Kube context to use instead of the current one")
@click.option(
    "--path",
    required=False,
    type=click.Path(),
    help="Directory where the upgrade folder is created (skips the path questions).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--poll-interval",
    required=False,
    type=float,
    default=None,
    help=f"Seconds between readiness checks (default: {DEFAULT_POLL_INTERVAL_SECONDS:g}).",
)
@click.option(
    "--wait-timeout",
    required=False,
    type=float,
    default=None,
    help=f"Seconds to wait for a deployment or operator to become ready (default: {DEFAULT_WAIT_TIMEOUT_SECONDS:g}).",
)
@click.option(
    "--tag-precedence",
    required=False,
    type=click.Choice([item.value for item in TagPrecedence]),
    default=None,
    help="Which reference wins when an image mapping has both a digest and a tag (default: digest).",
)
def main(
    entandoversion,
    namespace,
    config,
    context,
    path,
    verbose,
    log_file,
    poll_interval,
    wait_timeout,
    tag_precedence,
):
    """Upgrade an Entando installation to a newer version with a guided experience."""
    logger = logging.getLogger("entandoupgrader")

    try:
        config_loader = ConfigLoader()
        config_values = config_loader.load(config_loader.resolve_path(config))
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc

    version = _resolve_option(entandoversion, config_values, "version")
    namespace = _resolve_option(namespace, config_values, "namespace")
    context = _resolve_option(context, config_values, "context")
    path = _resolve_option(path, config_values, "path")
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    poll_interval = float(
        _resolve_option(
            poll_interval,
            config_values,
            "poll_interval_seconds",
            default=DEFAULT_POLL_INTERVAL_SECONDS,
        )
    )
    wait_timeout = float(
        _resolve_option(
            wait_timeout,
            config_values,
            "wait_timeout_seconds",
            default=DEFAULT_WAIT_TIMEOUT_SECONDS,
        )
    )
    tag_precedence = _resolve_option(
        tag_precedence,
        config_values,
        "tag_precedence",
        default=TagPrecedence.DIGEST_FIRST.value,
    )

    if poll_interval <= 0 or wait_timeout <= 0:
        raise click.ClickException("--poll-interval and --wait-timeout must be positive numbers.")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        upgrader = EntandoUpgrader(
            namespace=namespace,
            version=str(version) if version is not None else None,
            context=context,
            path=path,
            poll_interval=poll_interval,
            wait_timeout=wait_timeout,
            tag_precedence=tag_precedence,
        )
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(upgrader.run())


if __name__ == "__main__":
    main()
