from abc import ABC, abstractmethod
from typing import Any, Dict

from infragraph.models.resource import ResolvedResource


class Provisioner(ABC):
    """
    The control plane a graph is built against.

    Both calls must behave as create-or-update: repeating an identical call
    must not create a second resource or grant. Failures are reported by
    raising ``infragraph.errors.ProvisionError``.
    """

    @abstractmethod
    def materialize(self, kind: str, name: str, config: Dict[str, Any]) -> ResolvedResource:
        ...

    @abstractmethod
    def grant(self, principal: str, role: str, scope: str) -> None:
        ...
