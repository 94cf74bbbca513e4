import copy
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

# ${Resource.attribute} placeholders inside an interpolated string
_PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z0-9_\-]+)\.([A-Za-z0-9_.\-]+)\}")


@dataclass(frozen=True)
class Reference:
    target: str            # logical name of the referenced resource
    attribute: str = "id"  # output field, dotted for nested values

    @classmethod
    def parse(cls, text: str) -> "Reference":
        """Parse "Name.attr" (or a bare "Name", meaning "Name.id")."""
        text = text.strip()
        if "." in text:
            target, attribute = text.split(".", 1)
            return cls(target, attribute)
        return cls(text)

    def __str__(self) -> str:
        return f"{self.target}.{self.attribute}"


@dataclass(frozen=True)
class Interpolation:
    """A string template whose ${Name.attr} placeholders are references."""

    template: str

    @staticmethod
    def has_placeholders(text: str) -> bool:
        return bool(_PLACEHOLDER_RE.search(text))

    @property
    def references(self) -> List[Reference]:
        return [Reference(t, a) for t, a in _PLACEHOLDER_RE.findall(self.template)]

    def render(self, lookup: Callable[[Reference], Any]) -> str:
        return _PLACEHOLDER_RE.sub(
            lambda m: str(lookup(Reference(m.group(1), m.group(2)))), self.template
        )


@dataclass(frozen=True)
class SanitizedName:
    """A provider-safe name derived from a literal, reference or interpolation."""

    source: Any
    max_length: int = 24


def collect_references(value: Any) -> List[Reference]:
    """Return every reference reachable from a config value, in first-mention order."""
    refs: List[Reference] = []
    if isinstance(value, Reference):
        refs.append(value)
    elif isinstance(value, Interpolation):
        refs.extend(value.references)
    elif isinstance(value, SanitizedName):
        refs.extend(collect_references(value.source))
    elif isinstance(value, dict):
        for v in value.values():
            refs.extend(collect_references(v))
    elif isinstance(value, (list, tuple)):
        for item in value:
            refs.extend(collect_references(item))
    return refs


@dataclass
class ResourceSpec:
    name: str              # unique logical name within the stack
    kind: str              # e.g. "storage-account", "servicebus-queue"
    config: Dict[str, Any] = field(default_factory=dict)
    parent: Optional[str] = None
    source_file: str = ""

    def references(self) -> List[Reference]:
        return collect_references(self.config)


@dataclass(frozen=True)
class ResolvedResource:
    name: str
    kind: str
    outputs: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # detach from whatever the provisioner keeps and freeze the top level
        object.__setattr__(self, "outputs", MappingProxyType(copy.deepcopy(dict(self.outputs))))

    def lookup(self, attribute: str) -> Any:
        """
        Return the output at a dotted path, e.g. "properties.vault_uri".
        Raises KeyError when any segment is missing.
        """
        cur: Any = self.outputs
        for part in attribute.split("."):
            if not isinstance(cur, Mapping) or part not in cur:
                raise KeyError(attribute)
            cur = cur[part]
        return cur

    def __getitem__(self, attribute: str) -> Any:
        return self.lookup(attribute)

    def get(self, attribute: str, default: Any = None) -> Any:
        try:
            return self.lookup(attribute)
        except KeyError:
            return default

    def to_dict(self) -> dict:
        return {"name": self.name, "kind": self.kind, "outputs": copy.deepcopy(dict(self.outputs))}


@dataclass(frozen=True)
class AccessGrant:
    principal: str
    role: str
    scope: str             # logical name of a resource in the same stack


@dataclass(frozen=True)
class ResolvedGrant:
    principal: str
    role: str
    scope: str
    scope_id: str          # resolved id of the scope resource

    def to_dict(self) -> dict:
        return {
            "principal": self.principal,
            "role": self.role,
            "scope": self.scope,
            "scope_id": self.scope_id,
        }
