from dataclasses import dataclass

from gitopssets.context import ReconcileContext
from gitopssets.generator import Generator
from gitopssets.resources.gitopsset import ClusterGenerator as ClusterGeneratorSpec
from gitopssets.store import ObjectStore
from gitopssets.tools.selectors import parse_label_selector
from gitopssets.tools.types import ParameterElement

GITOPSCLUSTER_API_VERSION = "gitops.weave.works/v1alpha1"


@dataclass
class ClusterGenerator(Generator[ClusterGeneratorSpec], kind="cluster", payload_type=ClusterGeneratorSpec):
    """
    Produces one element per `GitopsCluster` in any namespace that matches the selector.
    """

    store: ObjectStore

    def generate_elements(
        self, ctx: ReconcileContext, payload: ClusterGeneratorSpec, namespace: str
    ) -> list[ParameterElement]:
        selector = parse_label_selector(payload.selector)
        clusters = self.store.list(ctx, GITOPSCLUSTER_API_VERSION, "GitopsCluster", selector=selector)

        ctx.log.debug("Cluster generator matched {} GitopsCluster(s) with selector '{}'", len(clusters), selector)

        elements = []
        for cluster in clusters:
            metadata = cluster.get("metadata") or {}
            elements.append(
                ParameterElement(
                    {
                        "ClusterName": metadata.get("name", ""),
                        "ClusterNamespace": metadata.get("namespace", ""),
                        "ClusterLabels": dict(metadata.get("labels") or {}),
                        "ClusterAnnotations": dict(metadata.get("annotations") or {}),
                    }
                )
            )
        return elements
