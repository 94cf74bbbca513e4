import copy
from typing import Any, Dict, Iterable, List, Optional, Tuple

from infragraph.errors import ProvisionError
from infragraph.models.resource import ResolvedResource
from infragraph.provisioners import azure
from infragraph.provisioners.base import Provisioner


class LocalProvisioner(Provisioner):
    """
    Deterministic in-process stand-in for the Azure control plane.

    Every call is recorded in ``calls`` / ``grants``. Names listed in
    ``fail_at`` raise ProvisionError when materialized.
    """

    def __init__(
        self,
        subscription_id: str = azure.DEFAULT_SUBSCRIPTION_ID,
        location: str = azure.DEFAULT_LOCATION,
        fail_at: Optional[Iterable[str]] = None,
    ):
        self.subscription_id = subscription_id
        self.location = location
        self.fail_at = set(fail_at or ())
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.grants: List[Dict[str, str]] = []
        self.resources: Dict[str, ResolvedResource] = {}

    def materialize(self, kind: str, name: str, config: Dict[str, Any]) -> ResolvedResource:
        self.calls.append((kind, name, copy.deepcopy(config)))
        if name in self.fail_at:
            raise ProvisionError(f"simulated failure creating {kind} '{name}'")
        outputs = azure.synthesize(kind, name, config, self.subscription_id, self.location)
        resource = ResolvedResource(name=name, kind=kind, outputs=outputs)
        self.resources[name] = resource
        return resource

    def grant(self, principal: str, role: str, scope: str) -> None:
        record = {
            "principal": principal,
            "role": role,
            "role_definition_id": azure.role_definition_id(self.subscription_id, role),
            "scope": scope,
        }
        if record not in self.grants:
            self.grants.append(record)

    @property
    def order(self) -> List[str]:
        return [name for _, name, _ in self.calls]
