import copy
from typing import Any, Dict

from infragraph.errors import UnresolvedReference
from infragraph.graph.naming import sanitize_name
from infragraph.models.resource import Interpolation, Reference, ResolvedResource, SanitizedName


def _lookup(ref: Reference, resources: Dict[str, ResolvedResource], owner: str) -> Any:
    referent = resources.get(ref.target)
    if referent is None:
        raise UnresolvedReference(owner, str(ref), resources)
    try:
        return copy.deepcopy(referent.lookup(ref.attribute))
    except KeyError:
        raise UnresolvedReference(owner, str(ref), resources) from None


def resolve_value(value: Any, resources: Dict[str, ResolvedResource], owner: str) -> Any:
    """
    Substitute every reference and derived value in ``value`` using
    already-resolved resources. ``owner`` names the resource (or output)
    being resolved, for error reporting.
    """
    if isinstance(value, Reference):
        return _lookup(value, resources, owner)
    if isinstance(value, Interpolation):
        return value.render(lambda ref: _lookup(ref, resources, owner))
    if isinstance(value, SanitizedName):
        return sanitize_name(resolve_value(value.source, resources, owner), value.max_length)
    if isinstance(value, dict):
        return {k: resolve_value(v, resources, owner) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(item, resources, owner) for item in value]
    return value
