import os
from dataclasses import dataclass, field, fields
from typing import Dict, Optional

import yaml
from rich.console import Console

from infragraph.provisioners.azure import DEFAULT_LOCATION, DEFAULT_SUBSCRIPTION_ID, DEFAULT_TENANT_ID

console = Console(stderr=True)

CONFIG_FILENAME = "infragraph.yaml"


@dataclass
class ProjectConfig:
    project: str = "infragraph"
    stack: str = "dev"
    subscription_id: str = DEFAULT_SUBSCRIPTION_ID
    tenant_id: str = DEFAULT_TENANT_ID
    principal: str = "current-user"
    location: str = DEFAULT_LOCATION
    tags: Dict[str, str] = field(default_factory=dict)

    def variables(self) -> Dict[str, str]:
        """Values available as ${name} in stack documents."""
        return {
            "project": self.project,
            "stack": self.stack,
            "subscription_id": self.subscription_id,
            "tenant_id": self.tenant_id,
            "principal": self.principal,
            "location": self.location,
        }

    def default_tags(self) -> Dict[str, str]:
        tags = {"project": self.project, "stack": self.stack}
        tags.update(self.tags)
        return tags


def load_config(path: Optional[str] = None, stack: Optional[str] = None) -> ProjectConfig:
    """
    Load project settings from infragraph.yaml (or ``path``).
    A missing default file yields the built-in defaults.
    """
    file_path = path or CONFIG_FILENAME
    values: Dict = {}
    if os.path.exists(file_path):
        with open(file_path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{file_path}: expected a mapping at the top level")
        known = {f.name for f in fields(ProjectConfig)}
        for key, value in data.items():
            if key not in known:
                console.print(f"[yellow]Warning:[/yellow] unknown config key '{key}' in {file_path}, ignoring.")
                continue
            values[key] = value
    elif path:
        raise FileNotFoundError(f"Configuration file not found: {path}")

    tags = values.get("tags") or {}
    if not isinstance(tags, dict):
        raise ValueError(f"{file_path}: 'tags' must be a mapping")
    values["tags"] = {str(k): str(v) for k, v in tags.items()}
    for key in values:
        if key != "tags":
            values[key] = str(values[key])

    config = ProjectConfig(**values)
    if stack:
        config.stack = stack
    return config
