from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from infragraph.models.resource import AccessGrant, ResolvedGrant, ResolvedResource, ResourceSpec


@dataclass
class StackDocument:
    name: str
    resources: List[ResourceSpec] = field(default_factory=list)
    grants: List[AccessGrant] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)
    source_file: str = ""


@dataclass
class BuildResult:
    order: List[str] = field(default_factory=list)
    resources: Dict[str, ResolvedResource] = field(default_factory=dict)
    grants: List[ResolvedGrant] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "order": list(self.order),
            "resources": {n: r.to_dict() for n, r in self.resources.items()},
            "grants": [g.to_dict() for g in self.grants],
            "outputs": dict(self.outputs),
        }


@dataclass
class StackRun:
    """One stack as seen by the reporters: its plan and, after apply, its result."""

    document: StackDocument
    order: List[str] = field(default_factory=list)
    result: Optional[BuildResult] = None
    error: Optional[str] = None
    failed_resource: Optional[str] = None

    @property
    def materialized(self) -> Dict[str, ResolvedResource]:
        return self.result.resources if self.result else {}
