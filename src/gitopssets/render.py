"""
Renders GitOpsSet templates into resource manifests.

Templates are Jinja2 templates that see the fields of the element they are rendered with as top-level variables, and
the whole element as `Element`. Placeholders written in the Go template style of GitOpsSets, such as `{{ .env }}`,
`{{ sanitize .env }}` or `{{ .Element.ClusterName | upper }}`, are translated into the equivalent Jinja2
expressions before the template is compiled.
"""

import base64
from collections.abc import Callable, Mapping, Sequence
import json
import re
import shlex
from typing import Any

import jinja2
from loguru import logger
import yaml

from gitopssets.errors import RenderError, TemplateEmptyError, UndefinedFieldError
from gitopssets.resources.gitopsset import GitOpsSetTemplate
from gitopssets.tools.types import Manifest, Manifests, ParameterElement

_ACTION = re.compile(r"\{\{(-?)(.*?)(-?)\}\}", re.DOTALL)
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_FIELD = re.compile(r"^\.([A-Za-z_][A-Za-z0-9_]*)?(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_GO_LITERALS = {"nil": "none", "true": "true", "false": "false"}

_SANITIZE_INVALID = re.compile(r"[^a-z0-9.-]")
_SANITIZE_EDGES = re.compile(r"^[^a-z0-9]+|[^a-z0-9]+$")


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def sanitize(value: Any) -> str:
    """
    Turn *value* into a string that can be used in a resource name: lower-cased, with every character other than
    `a-z`, `0-9`, `-` and `.` removed, and without leading or trailing punctuation.

    >>> sanitize("Engineering Dev")
    'engineeringdev'
    """

    return _SANITIZE_EDGES.sub("", _SANITIZE_INVALID.sub("", _text(value).lower()))


def quote(*values: Any) -> str:
    return " ".join(json.dumps(_text(value)) for value in values if value is not None)


def to_json(value: Any) -> str:
    def _default(obj: Any) -> Any:
        if isinstance(obj, bytes):
            return base64.b64encode(obj).decode("ascii")
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

    return json.dumps(value, separators=(",", ":"), default=_default)


def to_yaml(value: Any) -> str:
    return yaml.safe_dump(value, default_flow_style=False).rstrip("\n")


def b64enc(value: Any) -> str:
    data = value if isinstance(value, bytes) else str(value).encode("utf-8")
    return base64.b64encode(data).decode("ascii")


def b64dec(value: Any) -> str:
    return base64.b64decode(_text(value), validate=True).decode("utf-8", errors="replace")


FUNCTIONS: dict[str, Callable[..., Any]] = {
    "sanitize": sanitize,
    "lower": lambda value: _text(value).lower(),
    "upper": lambda value: _text(value).upper(),
    "trim": lambda value: _text(value).strip(),
    "quote": quote,
    "toJson": to_json,
    "toYaml": to_yaml,
    "b64enc": b64enc,
    "b64dec": b64dec,
}
""" The functions available to templates, both as functions and as filters. """


def translate_actions(text: str) -> str:
    """
    Translate the Go template style actions in *text* into Jinja2 expressions. Actions that do not reference a field
    of the element (`.name` or `.`) are considered Jinja2 expressions already and are left untouched.

    >>> translate_actions("name: {{ sanitize .team }}-{{ .env | upper }}")
    'name: {{ sanitize(team) }}-{{ env | upper }}'
    """

    def _replace(match: re.Match[str]) -> str:
        lead, body, trail = match.groups()
        expression = _translate_pipeline(body.strip())
        if expression is None:
            return match.group(0)
        return "{{" + lead + " " + expression + " " + trail + "}}"

    return _ACTION.sub(_replace, text)


def _translate_pipeline(body: str) -> str | None:
    segments = _split_pipeline(body)
    if segments is None:
        return None

    commands: list[list[str]] = []
    for segment in segments:
        try:
            tokens = shlex.split(segment, posix=False)
        except ValueError:
            return None
        if not tokens:
            return None
        commands.append(tokens)

    if not any(_FIELD.match(token) for tokens in commands for token in tokens):
        return None

    first, *args = commands[0]
    if _IDENTIFIER.match(first) and first not in _GO_LITERALS:
        expression = f"{first}({', '.join(map(_operand, args))})"
    elif args:
        return None
    else:
        expression = _operand(first)

    for name, *args in commands[1:]:
        if not _IDENTIFIER.match(name):
            return None
        expression += f" | {name}"
        if args:
            expression += f"({', '.join(map(_operand, args))})"

    return expression


def _split_pipeline(body: str) -> list[str] | None:
    segments: list[str] = []
    current = ""
    quote_char = None
    escaped = False
    for char in body:
        if quote_char:
            if escaped:
                escaped = False
            elif char == "\\" and quote_char == '"':
                escaped = True
            elif char == quote_char:
                quote_char = None
        elif char in "\"'`":
            quote_char = char
        elif char == "|":
            segments.append(current)
            current = ""
            continue
        current += char

    if quote_char:
        return None
    segments.append(current)
    return segments


def _operand(token: str) -> str:
    if token == ".":
        return "Element"
    if _FIELD.match(token):
        return token[1:]
    if len(token) >= 2 and token[0] == token[-1] == "`":
        return json.dumps(token[1:-1])
    return _GO_LITERALS.get(token, token)


def _finalize(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return _text(value)
    return value


def is_cluster_scoped_resource(manifest: Manifest) -> bool:
    """
    Check if a manifest is a cluster scoped resource.
    """

    fqn = manifest.get("kind", "") + "." + manifest.get("apiVersion", "").split("/")[0]
    return fqn in {
        "ClusterRole.rbac.authorization.k8s.io",
        "ClusterRoleBinding.rbac.authorization.k8s.io",
        "CustomResourceDefinition.apiextensions.k8s.io",
        "IngressClass.networking.k8s.io",
        "MutatingWebhookConfiguration.admissionregistration.k8s.io",
        "Namespace.v1",
        "Node.v1",
        "PersistentVolume.v1",
        "PriorityClass.scheduling.k8s.io",
        "StorageClass.storage.k8s.io",
        "ValidatingWebhookConfiguration.admissionregistration.k8s.io",
    }


class _ElementEnvironment(jinja2.Environment):
    """
    Resolves `a.b` to the key `b` of a mapping before falling back to the attribute, so that element fields named
    like dict methods (`values`, `items`, ...) render their data.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except (KeyError, TypeError):
                pass
        return super().getattr(obj, attribute)


class Renderer:
    """
    Renders every template once per element.
    """

    def __init__(self) -> None:
        self._env = _ElementEnvironment(undefined=jinja2.StrictUndefined, finalize=_finalize)
        for name, func in FUNCTIONS.items():
            self._env.globals[name] = func
            self._env.filters[name] = func

    def render(
        self, templates: Sequence[GitOpsSetTemplate], elements: Sequence[ParameterElement], namespace: str
    ) -> Manifests:
        """
        Render the templates with the elements. The result is ordered by template first and element second.

        Args:
            templates: The templates to render.
            elements: The combined elements of the generators.
            namespace: The namespace of the GitOpsSet, which is used for namespaced resources that do not specify one.
        Raises:
            RenderError: If a template is invalid or does not render into a resource.
        """

        compiled = [self._compile(index, template) for index, template in enumerate(templates)]

        result = Manifests([])
        for index, template in enumerate(compiled):
            for element in elements:
                result.append(self._render_one(index, template, element, namespace))

        logger.trace("Rendered {} template(s) with {} element(s)", len(templates), len(elements))
        return result

    def _compile(self, index: int, template: GitOpsSetTemplate) -> jinja2.Template:
        if isinstance(template.content, str):
            text = template.content
        else:
            text = yaml.safe_dump(template.content, sort_keys=False, width=float("inf"))

        try:
            return self._env.from_string(translate_actions(text))
        except jinja2.TemplateSyntaxError as exc:
            raise RenderError(index, f"invalid template: {exc}") from exc

    def _render_one(
        self, index: int, template: jinja2.Template, element: ParameterElement, namespace: str
    ) -> Manifest:
        try:
            text = template.render({**element, "Element": element})
        except jinja2.UndefinedError as exc:
            raise UndefinedFieldError(index, str(exc)) from exc
        except (jinja2.TemplateError, ValueError, TypeError) as exc:
            raise RenderError(index, str(exc)) from exc

        try:
            manifest = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise RenderError(index, f"rendered template is not valid YAML: {exc}") from exc

        if not manifest:
            raise TemplateEmptyError(index, "no resource was rendered")
        if not isinstance(manifest, dict):
            raise RenderError(index, f"expected a resource, got {type(manifest).__name__}")

        metadata = manifest.get("metadata")
        if not manifest.get("apiVersion") or not manifest.get("kind"):
            raise RenderError(index, "rendered resource must have an apiVersion and a kind")
        if not isinstance(metadata, dict) or not metadata.get("name"):
            raise RenderError(index, "rendered resource must have a metadata.name")

        manifest = Manifest(manifest)
        if not metadata.get("namespace") and not is_cluster_scoped_resource(manifest):
            metadata["namespace"] = namespace
        return manifest
