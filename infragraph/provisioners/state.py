"""
Resumable provisioning: remember what has been materialized in a JSON
state file and skip identical calls on the next run.
"""
import hashlib
import json
import os
from typing import Any, Dict, Optional

from infragraph.models.resource import ResolvedResource
from infragraph.provisioners.base import Provisioner

STATE_VERSION = 1


def fingerprint(kind: str, config: Dict[str, Any]) -> str:
    payload = json.dumps({"kind": kind, "config": config}, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class StateFileProvisioner(Provisioner):
    def __init__(self, inner: Provisioner, path: str, stack: str = "default"):
        self.inner = inner
        self.path = path
        self.stack = stack
        self.skipped = 0
        self._state = self._load()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {"version": STATE_VERSION, "stacks": {}}
        with open(self.path, encoding="utf-8") as fh:
            state = json.load(fh)
        state.setdefault("version", STATE_VERSION)
        state.setdefault("stacks", {})
        return state

    def _save(self) -> None:
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8", newline="\n") as fh:
            json.dump(self._state, fh, indent=2, sort_keys=True, default=str)
        os.replace(tmp, self.path)

    def _entries(self) -> Dict[str, Any]:
        return self._state["stacks"].setdefault(self.stack, {"resources": {}, "grants": []})

    def recorded(self, name: str) -> Optional[ResolvedResource]:
        entry = self._entries()["resources"].get(name)
        if entry is None:
            return None
        return ResolvedResource(name=name, kind=entry["kind"], outputs=entry["outputs"])

    def materialize(self, kind: str, name: str, config: Dict[str, Any]) -> ResolvedResource:
        resources = self._entries()["resources"]
        digest = fingerprint(kind, config)
        entry = resources.get(name)
        if entry and entry["kind"] == kind and entry["fingerprint"] == digest:
            self.skipped += 1
            return ResolvedResource(name=name, kind=kind, outputs=entry["outputs"])

        resource = self.inner.materialize(kind, name, config)
        resources[name] = {
            "kind": kind,
            "fingerprint": digest,
            "outputs": dict(resource.outputs),
        }
        self._save()
        return resource

    def grant(self, principal: str, role: str, scope: str) -> None:
        grants = self._entries()["grants"]
        record = {"principal": principal, "role": role, "scope": scope}
        if record in grants:
            return
        self.inner.grant(principal, role, scope)
        grants.append(record)
        self._save()
