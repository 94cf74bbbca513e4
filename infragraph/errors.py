"""
Exceptions raised while compiling and provisioning a resource graph.
"""
from typing import Dict, List, Optional

from infragraph.models.resource import ResolvedResource


class ProvisionError(Exception):
    """Raised by a provisioner when a single create-or-update or grant call fails."""


class GraphError(Exception):
    """
    Base class for build failures.

    ``name`` is the offending resource and ``resolved`` holds every resource
    materialized before the failure, so a caller can resume.
    """

    def __init__(self, message: str, name: str = "", resolved: Optional[Dict[str, ResolvedResource]] = None):
        super().__init__(message)
        self.name = name
        self.resolved: Dict[str, ResolvedResource] = dict(resolved or {})


class DuplicateName(GraphError):
    def __init__(self, name: str):
        super().__init__(f"Resource name '{name}' is declared more than once.", name)


class UnresolvedReference(GraphError):
    def __init__(self, name: str, reference: str, resolved=None):
        super().__init__(
            f"Resource '{name}' has an unresolved reference '{reference}'.",
            name,
            resolved,
        )
        self.reference = reference


class CycleDetected(GraphError):
    def __init__(self, path: List[str]):
        super().__init__(f"Dependency cycle: {' -> '.join(path)}", path[0] if path else "")
        self.path = list(path)


class UnknownScope(GraphError):
    def __init__(self, name: str, principal: str = "", role: str = ""):
        super().__init__(
            f"Grant of '{role}' to '{principal}' is scoped to '{name}', which is not in the graph.",
            name,
        )
        self.principal = principal
        self.role = role


class ProvisionFailed(GraphError):
    def __init__(self, name: str, cause: Exception, resolved=None):
        super().__init__(f"Provisioning '{name}' failed: {cause}", name, resolved)
        self.cause = cause
