import signal
import threading

from databind.core import ConversionError
from loguru import logger
from typer import Argument, BadParameter, Context, Exit, Option

from gitopssets.config import ConfigFile
from gitopssets.context import ReconcileContext
from gitopssets.controller import GitOpsSetController
from gitopssets.errors import GitOpsSetError
from gitopssets.resources import API_VERSION
from gitopssets.resources.gitopsset import READY_CONDITION, GitOpsSet
from gitopssets.resources.inventory import ResourceRef
from gitopssets.store.kubernetes import KubernetesObjectStore

from . import app, new_api_client


def _new_controller(config: ConfigFile, in_cluster: bool) -> GitOpsSetController:
    store = KubernetesObjectStore(new_api_client(in_cluster), config.config.field_manager, config.config.http_timeout)
    return GitOpsSetController.from_config(store, config.config)


def _parse_key(key: str) -> tuple[str, str]:
    namespace, sep, name = key.partition("/")
    if not sep or not namespace or not name:
        raise BadParameter(f"expected NAMESPACE/NAME, got {key!r}")
    return namespace, name


@app.command()
def reconcile(
    ctx: Context,
    keys: list[str] = Argument(..., help="The GitOpsSets to reconcile, as NAMESPACE/NAME."),
    in_cluster: bool = Option(False, help="Use the in-cluster Kubernetes configuration."),
) -> None:
    """
    Reconcile the given GitOpsSets once and report their status.
    """

    refs = [_parse_key(key) for key in keys]
    controller = _new_controller(ctx.obj, in_cluster)
    group, _, version = API_VERSION.partition("/")

    failed = False
    for namespace, name in refs:
        try:
            manifest = controller.store.get(
                ReconcileContext.with_timeout(controller.reconcile_timeout),
                ResourceRef(group, version, GitOpsSet.KIND, namespace, name),
            )
            if manifest is None:
                logger.error("GitOpsSet {}/{} not found", namespace, name)
                failed = True
                continue
            outcome = controller.reconcile(GitOpsSet.load(manifest))
        except (GitOpsSetError, ConversionError, ValueError) as exc:
            logger.error("Failed to reconcile GitOpsSet {}/{}: {}", namespace, name, exc)
            failed = True
            continue

        condition = outcome.status.get_condition(READY_CONDITION)
        message = condition.message if condition else ""
        if outcome.ready:
            logger.info("GitOpsSet {}/{} is ready: {}", namespace, name, message)
        else:
            logger.error("GitOpsSet {}/{} is not ready: {}", namespace, name, message)
            failed = True

    if failed:
        raise Exit(1)


@app.command()
def run(
    ctx: Context,
    namespace: str | None = Option(None, help="Only reconcile GitOpsSets in this namespace."),
    in_cluster: bool = Option(False, help="Use the in-cluster Kubernetes configuration."),
) -> None:
    """
    Reconcile all GitOpsSets continuously until interrupted.
    """

    config: ConfigFile = ctx.obj
    controller = _new_controller(config, in_cluster)

    stop = threading.Event()

    def _handle_signal(signum: int, _frame: object) -> None:
        logger.info("Received signal {}, stopping", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("Reconciling GitOpsSets in {} every {}", namespace or "all namespaces", config.config.resync)
    controller.run(stop, config.config.resync, namespace)
