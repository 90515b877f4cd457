"""
gitopssets renders GitOpsSets, which combine generators with resource templates, and keeps the generated resources in
sync with a Kubernetes cluster.
"""

from enum import Enum
from pathlib import Path
import sys

from kubernetes.client.api_client import ApiClient
from kubernetes.config.incluster_config import load_incluster_config
from kubernetes.config.kube_config import load_kube_config
from loguru import logger
from typer import Context, Option, Typer

from gitopssets.config import ConfigFile

app = Typer(help=__doc__, no_args_is_help=True, pretty_exceptions_enable=False)


class LogLevel(str, Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@app.callback()
def _callback(
    ctx: Context,
    log_level: LogLevel = Option(LogLevel.INFO, "--log-level", "-l", help="The log level to use."),
    config: Path | None = Option(
        None,
        "--config",
        envvar="GITOPSSETS_CONFIG",
        help="The controller configuration file. Defaults to 'gitopssets.yaml' in the current or a parent directory.",
    ),
) -> None:
    logger.remove()
    logger.add(sys.stderr, level=log_level.name)
    ctx.obj = ConfigFile.load(config)


def new_api_client(in_cluster: bool) -> ApiClient:
    """
    Create a Kubernetes API client from the in-cluster configuration or from the current kubeconfig context.
    """

    if in_cluster:
        logger.info("Using in-cluster configuration.")
        load_incluster_config()
    else:
        logger.info("Using the current kubeconfig context.")
        load_kube_config()
    return ApiClient()


def main() -> None:
    app()


# Commands are registered on import; they depend on the helpers above.
from . import crds  # noqa: F401,E402
from . import reconcile  # noqa: F401,E402
from . import template  # noqa: F401,E402
