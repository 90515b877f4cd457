import yaml

from gitopssets.resources.gitopsset import GitOpsSet
from . import app


@app.command()
def crds() -> None:
    """
    Print out the CRD that needs to be installed on a Kubernetes cluster before GitOpsSets can be reconciled.
    """

    print("---")
    print(yaml.safe_dump(GitOpsSet.CRD))
