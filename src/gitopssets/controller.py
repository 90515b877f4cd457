"""
The controller reconciles GitOpsSets: it generates the elements, renders the templates, applies the resulting
resources and reports the outcome on the status of the GitOpsSet.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import threading
from typing import Any

from databind.core import ConversionError
from databind.json import dump as ser
from loguru import logger
import requests

from gitopssets.combine import EmptyGeneratorsPolicy, combine
from gitopssets.config import ControllerConfig
from gitopssets.context import ReconcileContext
from gitopssets.errors import GitOpsSetError
from gitopssets.generator.dispatch import DispatchingGenerator
from gitopssets.reconciler import InventoryReconciler
from gitopssets.render import Renderer
from gitopssets.resources import API_VERSION
from gitopssets.resources.gitopsset import READY_CONDITION, Condition, GitOpsSet, GitOpsSetStatus
from gitopssets.resources.inventory import ResourceRef
from gitopssets.store import ObjectStore
from gitopssets.tools.archive import ArchiveFetcher
from gitopssets.tools.types import Manifests, ParameterElement


@dataclass
class ReconcileOutcome:
    status: GitOpsSetStatus
    """ The status that was written to the GitOpsSet. """

    requeue_after: timedelta | None
    """ When the GitOpsSet should be reconciled again, or `None` if there is nothing to poll. """

    error: GitOpsSetError | None = None

    @property
    def ready(self) -> bool:
        return self.error is None


@dataclass
class GitOpsSetController:
    store: ObjectStore
    generator: DispatchingGenerator
    renderer: Renderer = field(default_factory=Renderer)
    empty_generators: EmptyGeneratorsPolicy = "none"
    reconcile_timeout: float | None = 300

    @staticmethod
    def from_config(
        store: ObjectStore, config: ControllerConfig, session: requests.Session | None = None
    ) -> "GitOpsSetController":
        """
        Create a controller with the default generators, configured from *config*.
        """

        fetcher = ArchiveFetcher.default(
            retries=config.fetch_retries, max_size=config.max_archive_size, timeout=config.http_timeout
        )
        generator = DispatchingGenerator.default(
            store=store,
            fetcher=fetcher,
            session=session,
            scratch_dir=config.scratch_dir,
            http_timeout=config.http_timeout,
        )
        return GitOpsSetController(
            store=store,
            generator=generator,
            empty_generators=config.empty_generators,
            reconcile_timeout=config.reconcile_timeout,
        )

    def new_context(self, gitopsset: GitOpsSet) -> ReconcileContext:
        return ReconcileContext.with_timeout(self.reconcile_timeout, log=logger.bind(gitopsset=gitopsset.key))

    def generate(self, ctx: ReconcileContext, gitopsset: GitOpsSet) -> list[ParameterElement]:
        """
        Run the generators of *gitopsset* and combine their elements.
        """

        results = []
        for idx, spec in enumerate(gitopsset.spec.generators):
            elements = self.generator.generate(ctx, spec, gitopsset.namespace)
            if elements is None:
                ctx.log.warning("Generator {} does not set a generator kind and is ignored", idx)
                continue
            results.append(elements)

        return combine(results, self.empty_generators)

    def render(self, ctx: ReconcileContext, gitopsset: GitOpsSet) -> Manifests:
        """
        Generate the elements of *gitopsset* and render its templates with them.
        """

        elements = self.generate(ctx, gitopsset)
        ctx.log.debug("Rendering {} template(s) with {} element(s)", len(gitopsset.spec.templates), len(elements))
        return self.renderer.render(gitopsset.spec.templates, elements, gitopsset.namespace)

    def requeue_after(self, gitopsset: GitOpsSet) -> timedelta | None:
        """
        Return the shortest interval that a generator of *gitopsset* asks to be polled at.
        """

        intervals = [self.generator.interval(spec) for spec in gitopsset.spec.generators]
        return min((interval for interval in intervals if interval is not None), default=None)

    def reconcile(self, gitopsset: GitOpsSet, ctx: ReconcileContext | None = None) -> ReconcileOutcome:
        """
        Reconcile *gitopsset* and write the outcome to its status. Errors caused by the GitOpsSet or the systems that
        its generators talk to are reported as a `Ready=False` condition and do not change the inventory.

        Raises:
            GitOpsSetError: If the status can not be written.
        """

        ctx = ctx or self.new_context(gitopsset)

        if gitopsset.spec.suspend:
            ctx.log.info("GitOpsSet is suspended, skipping reconciliation")
            return ReconcileOutcome(gitopsset.status, None)

        status = copy.deepcopy(gitopsset.status)
        generation = gitopsset.metadata.generation or 0
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        requeue_after: timedelta | None = None
        error: GitOpsSetError | None = None

        try:
            requeue_after = self.requeue_after(gitopsset)
            manifests = self.render(ctx, gitopsset)
            result = InventoryReconciler(self.store).reconcile(ctx, gitopsset, manifests, status.inventory)
        except GitOpsSetError as exc:
            ctx.log.error("Reconciliation failed: {}", exc)
            error = exc
            status.set_condition(Condition(READY_CONDITION, "False", exc.reason, str(exc), now, generation))
        else:
            ctx.log.info("Reconciliation succeeded: {}", result.message)
            status.inventory = result.inventory
            status.set_condition(
                Condition(READY_CONDITION, "True", "ReconciliationSucceeded", result.message, now, generation)
            )

        status.observedGeneration = generation
        self.store.update_status(ctx, self._ref(gitopsset), _dump_status(status))
        return ReconcileOutcome(status, requeue_after, error)

    def list_gitopssets(self, ctx: ReconcileContext, namespace: str | None = None) -> list[GitOpsSet]:
        """
        List the GitOpsSets in *namespace* (or in all namespaces). Objects that can not be loaded are logged and
        skipped.
        """

        result = []
        for manifest in self.store.list(ctx, API_VERSION, "GitOpsSet", namespace=namespace):
            try:
                result.append(GitOpsSet.load(manifest))
            except (ConversionError, ValueError) as exc:
                metadata = manifest.get("metadata") or {}
                logger.error(
                    "Skipping invalid GitOpsSet {}/{}: {}", metadata.get("namespace"), metadata.get("name"), exc
                )
        return result

    def reconcile_all(self, namespace: str | None = None) -> timedelta | None:
        """
        Reconcile every GitOpsSet once. Returns the shortest requeue interval of all GitOpsSets.

        Raises:
            GitOpsSetError: If the GitOpsSets can not be listed.
        """

        gitopssets = self.list_gitopssets(ReconcileContext.with_timeout(self.reconcile_timeout), namespace)
        logger.info("Reconciling {} GitOpsSet(s)", len(gitopssets))

        intervals = []
        for gitopsset in gitopssets:
            try:
                outcome = self.reconcile(gitopsset)
            except GitOpsSetError as exc:
                logger.error("Failed to update the status of GitOpsSet {}: {}", gitopsset.key, exc)
                continue
            if outcome.requeue_after is not None:
                intervals.append(outcome.requeue_after)

        return min(intervals, default=None)

    def run(self, stop: threading.Event, resync: timedelta, namespace: str | None = None) -> None:
        """
        Reconcile every GitOpsSet repeatedly until *stop* is set. After each round, the controller sleeps until the
        earliest requeue interval of any GitOpsSet, but no longer than *resync*.
        """

        while not stop.is_set():
            try:
                wait = min(self.reconcile_all(namespace) or resync, resync)
            except GitOpsSetError as exc:
                logger.error("Failed to list GitOpsSets: {}", exc)
                wait = resync

            logger.debug("Next reconciliation in {}", wait)
            stop.wait(wait.total_seconds())

    @staticmethod
    def _ref(gitopsset: GitOpsSet) -> ResourceRef:
        group, _, version = API_VERSION.partition("/")
        return ResourceRef(group, version, GitOpsSet.KIND, gitopsset.namespace, gitopsset.metadata.name)


def _dump_status(status: GitOpsSetStatus) -> dict[str, Any]:
    return dict(ser(status, GitOpsSetStatus))
