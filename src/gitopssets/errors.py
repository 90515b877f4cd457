"""
Exceptions raised while reconciling a GitOpsSet.

Every error that can be caused by user-supplied data derives from `GitOpsSetError`, which the controller turns into
a `Ready=False` condition on the GitOpsSet instead of letting it escape. The subclasses classify how the error should
be treated:

* `ConfigurationError`: the GitOpsSet itself is wrong. Retrying will not help until the resource is changed.
* `TransientError`: a remote system failed. The next scheduled reconciliation will try again.
* `DataError`: a remote system returned data that cannot be used (including rendering failures).
"""

from dataclasses import dataclass
from pathlib import Path
import textwrap


class GitOpsSetError(Exception):
    """
    Base class for errors surfaced on the status of a GitOpsSet.
    """

    #: The condition reason reported on the GitOpsSet when this error fails a reconciliation.
    reason = "ReconciliationFailed"


class ConfigurationError(GitOpsSetError, ValueError):
    reason = "ConfigurationError"


class TransientError(GitOpsSetError):
    reason = "TransientError"


class DataError(GitOpsSetError, ValueError):
    reason = "DataError"


class EmptyOwningObjectError(GitOpsSetError):
    """
    Raised when a generator is invoked without a generator specification. This is a bug in the caller, not in the
    GitOpsSet.
    """

    def __init__(self) -> None:
        super().__init__("no generator specification was provided")


class ReconcileCancelled(TransientError):
    """
    Raised when the reconciliation was cancelled or its deadline expired.
    """


@dataclass
class PathTraversalError(ConfigurationError):
    """
    Raised when a path would resolve to a location outside of the directory it is supposed to be confined to.
    """

    path: str
    root: Path

    def __str__(self) -> str:
        return f"path {self.path!r} escapes the directory {str(self.root)!r}"


@dataclass
class ChecksumMismatchError(DataError):
    url: str
    expected: str
    actual: str

    def __str__(self) -> str:
        return f"checksum mismatch for archive {self.url}: expected {self.expected!r}, got {self.actual!r}"


@dataclass
class EndpointError(TransientError):
    """
    Raised when an HTTP endpoint responds with a status code that indicates an error.
    """

    endpoint: str
    status_code: int
    body: str = ""

    def __str__(self) -> str:
        message = f"got {self.status_code} response from endpoint {self.endpoint}"
        if self.body:
            message += f": {self.body}"
        return message


@dataclass
class RenderError(DataError):
    """
    Raised when a template can not be rendered into a resource.
    """

    template_index: int
    message: str

    def __str__(self) -> str:
        if "\n" in self.message:
            message = "\n\n" + textwrap.indent(self.message, "  ")
        else:
            message = self.message
        return f"failed to render template {self.template_index}: {message}"


class TemplateEmptyError(RenderError):
    """
    Raised when a template produced no resource after substitution.
    """

    def __str__(self) -> str:
        return f"template is empty: {super().__str__()}"


class UndefinedFieldError(TemplateEmptyError):
    """
    Raised when a template references a field that is not present in the element it is rendered with. No value is
    substituted for such references, so the template is treated as empty.
    """
