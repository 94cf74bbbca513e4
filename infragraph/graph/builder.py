from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from infragraph.errors import (
    CycleDetected,
    DuplicateName,
    ProvisionError,
    ProvisionFailed,
    UnknownScope,
    UnresolvedReference,
)
from infragraph.graph.resolve import resolve_value
from infragraph.models.resource import (
    AccessGrant,
    ResolvedGrant,
    ResolvedResource,
    ResourceSpec,
    collect_references,
)
from infragraph.models.stack import BuildResult
from infragraph.provisioners.base import Provisioner

_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2

ProgressCallback = Callable[[ResourceSpec, ResolvedResource], None]


def dependencies(spec: ResourceSpec) -> List[str]:
    """Names this spec depends on: parent first, then references in first-mention order."""
    deps: List[str] = []
    if spec.parent:
        deps.append(spec.parent)
    for ref in spec.references():
        if ref.target not in deps:
            deps.append(ref.target)
    return deps


def _index(specs: List[ResourceSpec]) -> Dict[str, ResourceSpec]:
    index: Dict[str, ResourceSpec] = {}
    for spec in specs:
        if spec.name in index:
            raise DuplicateName(spec.name)
        index[spec.name] = spec
    return index


def _check_references(specs: List[ResourceSpec], index: Dict[str, ResourceSpec]) -> None:
    for spec in specs:
        if spec.parent and spec.parent not in index:
            raise UnresolvedReference(spec.name, spec.parent)
        for ref in spec.references():
            if ref.target not in index:
                raise UnresolvedReference(spec.name, str(ref))


def _topological_order(specs: List[ResourceSpec], index: Dict[str, ResourceSpec]) -> List[str]:
    """
    Depth-first postorder over dependency edges, so every resource comes
    after everything it depends on. Roots are taken in declaration order.
    Raises CycleDetected with the cycle path when an in-progress node is
    reached again.
    """
    deps = {spec.name: dependencies(spec) for spec in specs}
    state = {spec.name: _UNVISITED for spec in specs}
    order: List[str] = []

    for spec in specs:
        if state[spec.name] != _UNVISITED:
            continue
        # explicit stack of (name, remaining deps); names on it form the current path
        stack = [(spec.name, iter(deps[spec.name]))]
        state[spec.name] = _IN_PROGRESS
        while stack:
            name, pending = stack[-1]
            dep = next(pending, None)
            if dep is None:
                stack.pop()
                state[name] = _DONE
                order.append(name)
            elif state[dep] == _IN_PROGRESS:
                path = [n for n, _ in stack]
                raise CycleDetected(path[path.index(dep):] + [dep])
            elif state[dep] == _UNVISITED:
                state[dep] = _IN_PROGRESS
                stack.append((dep, iter(deps[dep])))
    return order


def _check_grants(grants: List[AccessGrant], index: Dict[str, ResourceSpec]) -> None:
    # only existence is checked; a grant on an ancestor is the caller's call
    for g in grants:
        if g.scope not in index:
            raise UnknownScope(g.scope, g.principal, g.role)


def _check_outputs(outputs: Dict[str, Any], index: Dict[str, ResourceSpec]) -> None:
    for key, value in outputs.items():
        for ref in collect_references(value):
            if ref.target not in index:
                raise UnresolvedReference(key, str(ref))


def _validate(
    specs: List[ResourceSpec], grants: List[AccessGrant], outputs: Dict[str, Any]
) -> Tuple[Dict[str, ResourceSpec], List[str]]:
    index = _index(specs)
    _check_references(specs, index)
    order = _topological_order(specs, index)
    _check_grants(grants, index)
    _check_outputs(outputs, index)
    return index, order


def plan(
    specs: Iterable[ResourceSpec],
    grants: Iterable[AccessGrant] = (),
    outputs: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """Validate a stack and return its evaluation order without provisioning anything."""
    _, order = _validate(list(specs), list(grants), outputs or {})
    return order


def build(
    specs: Iterable[ResourceSpec],
    provisioner: Provisioner,
    grants: Iterable[AccessGrant] = (),
    outputs: Optional[Dict[str, Any]] = None,
    progress: Optional[ProgressCallback] = None,
) -> BuildResult:
    """
    Materialize every spec in dependency order, then issue grants and
    resolve exported outputs.

    All structural checks run before the first provisioning call. The first
    failing provisioning call aborts the build; the raised GraphError carries
    the resources materialized so far.
    """
    specs = list(specs)
    grants = list(grants)
    outputs = outputs or {}
    index, order = _validate(specs, grants, outputs)

    resolved: Dict[str, ResolvedResource] = {}
    for name in order:
        spec = index[name]
        config = resolve_value(spec.config, resolved, name)
        try:
            resource = provisioner.materialize(spec.kind, name, config)
        except ProvisionError as exc:
            raise ProvisionFailed(name, exc, resolved) from exc
        if not isinstance(resource, ResolvedResource):
            resource = ResolvedResource(name=name, kind=spec.kind, outputs=resource)
        resolved[name] = resource
        if progress:
            progress(spec, resource)

    issued: List[ResolvedGrant] = []
    for g in grants:
        target = resolved[g.scope]
        scope_id = str(target.get("id") or target.name)
        try:
            provisioner.grant(g.principal, g.role, scope_id)
        except ProvisionError as exc:
            raise ProvisionFailed(g.scope, exc, resolved) from exc
        issued.append(ResolvedGrant(g.principal, g.role, g.scope, scope_id))

    exported = {key: resolve_value(value, resolved, key) for key, value in outputs.items()}

    return BuildResult(order=order, resources=resolved, grants=issued, outputs=exported)
