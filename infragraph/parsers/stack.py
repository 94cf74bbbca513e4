import json
import os
import re
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

from infragraph.config import ProjectConfig
from infragraph.detect import detect_format
from infragraph.models.resource import (
    AccessGrant,
    Interpolation,
    Reference,
    ResourceSpec,
    SanitizedName,
)
from infragraph.models.stack import StackDocument

console = Console(stderr=True)

# ${var} project variables; ${Name.attr} placeholders are left for Interpolation
_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

_REF_PREFIX = "ref:"
_DEFAULT_MAX_LENGTH = 24


def _expand_vars(text: str, variables: Dict[str, str], where: str) -> str:
    def sub(m):
        key = m.group(1)
        if key in variables:
            return variables[key]
        console.print(f"[yellow]Warning:[/yellow] unknown variable '${{{key}}}' in {where}, left as-is.")
        return m.group(0)

    return _VAR_RE.sub(sub, text)


def _strip_ref(text: str) -> str:
    return text[len(_REF_PREFIX):] if text.startswith(_REF_PREFIX) else text


def _convert(value: Any, variables: Dict[str, str], where: str) -> Any:
    """
    Turn document values into config values:
      "ref:Name.attr"                  → Reference
      "...${Name.attr}..."             → Interpolation
      {"sanitize": v, "max_length": n} → SanitizedName
    """
    if isinstance(value, str):
        text = _expand_vars(value, variables, where)
        if text.startswith(_REF_PREFIX):
            return Reference.parse(text[len(_REF_PREFIX):])
        if Interpolation.has_placeholders(text):
            return Interpolation(text)
        return text
    if isinstance(value, dict):
        if "sanitize" in value and set(value) <= {"sanitize", "max_length"}:
            try:
                max_length = int(value.get("max_length", _DEFAULT_MAX_LENGTH))
            except (TypeError, ValueError):
                console.print(
                    f"[yellow]Warning:[/yellow] invalid max_length {value.get('max_length')!r} in {where}, "
                    f"using {_DEFAULT_MAX_LENGTH}."
                )
                max_length = _DEFAULT_MAX_LENGTH
            return SanitizedName(_convert(value["sanitize"], variables, where), max_length)
        return {k: _convert(v, variables, where) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v, variables, where) for v in value]
    return value


def _apply_tags(config: Dict[str, Any], project: ProjectConfig) -> None:
    # only resources that declare tags receive the project defaults
    if "tags" not in config:
        return
    tags = config["tags"]
    if tags is True:
        config["tags"] = project.default_tags()
    elif isinstance(tags, dict):
        merged = project.default_tags()
        merged.update(tags)
        config["tags"] = merged
    elif not tags:
        del config["tags"]


def _parse_resource(raw: Any, project: ProjectConfig, where: str) -> Optional[ResourceSpec]:
    if not isinstance(raw, dict):
        console.print(f"[yellow]Warning:[/yellow] skipping non-mapping resource entry in {where}")
        return None
    name, kind = raw.get("name"), raw.get("kind")
    if not name or not kind:
        console.print(f"[yellow]Warning:[/yellow] skipping resource without name/kind in {where}: {raw}")
        return None
    variables = project.variables()
    raw_config = raw.get("config") or {}
    if not isinstance(raw_config, dict):
        console.print(f"[yellow]Warning:[/yellow] config of '{name}' in {where} is not a mapping, ignoring it.")
        raw_config = {}
    config = _convert(raw_config, variables, f"{where}:{name}")
    _apply_tags(config, project)
    parent = raw.get("parent")
    return ResourceSpec(
        name=str(name),
        kind=str(kind),
        config=config,
        parent=_strip_ref(str(parent)) if parent else None,
        source_file=where,
    )


def _parse_grant(raw: Any, project: ProjectConfig, where: str) -> Optional[AccessGrant]:
    if not isinstance(raw, dict) or not all(raw.get(k) for k in ("principal", "role", "scope")):
        console.print(f"[yellow]Warning:[/yellow] skipping grant without principal/role/scope in {where}: {raw}")
        return None
    variables = project.variables()
    return AccessGrant(
        principal=_expand_vars(str(raw["principal"]), variables, where),
        role=_expand_vars(str(raw["role"]), variables, where),
        scope=_strip_ref(str(raw["scope"])),
    )


def parse_data(data: Dict[str, Any], source: str = "", project: Optional[ProjectConfig] = None) -> StackDocument:
    """Build a StackDocument from an already-loaded mapping."""
    project = project or ProjectConfig()
    stem = os.path.splitext(os.path.basename(source))[0] if source else "stack"
    doc = StackDocument(name=str(data.get("name") or stem), source_file=source)

    for raw in data.get("resources") or []:
        spec = _parse_resource(raw, project, source)
        if spec:
            doc.resources.append(spec)

    for raw in data.get("grants") or []:
        grant = _parse_grant(raw, project, source)
        if grant:
            doc.grants.append(grant)

    outputs = data.get("outputs") or {}
    if isinstance(outputs, dict):
        doc.outputs = {str(k): _convert(v, project.variables(), f"{source}:outputs") for k, v in outputs.items()}
    else:
        console.print(f"[yellow]Warning:[/yellow] outputs in {source} is not a mapping, ignoring it.")

    return doc


def parse_file(filepath: str, project: Optional[ProjectConfig] = None) -> StackDocument:
    try:
        _, ext = os.path.splitext(filepath.lower())
        with open(filepath, encoding="utf-8") as fh:
            data = json.load(fh) if ext == ".json" else yaml.safe_load(fh)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        console.print(f"[yellow]Warning:[/yellow] failed to parse {filepath}: {exc}")
        return StackDocument(name=os.path.splitext(os.path.basename(filepath))[0], source_file=filepath)

    if not isinstance(data, dict):
        console.print(f"[yellow]Warning:[/yellow] {filepath} is not a stack document, skipping.")
        return StackDocument(name=os.path.splitext(os.path.basename(filepath))[0], source_file=filepath)

    return parse_data(data, filepath, project)


def parse_directory(path: str, project: Optional[ProjectConfig] = None) -> List[StackDocument]:
    docs: List[StackDocument] = []

    if os.path.isfile(path):
        if detect_format(path) != "unknown":
            docs.append(parse_file(path, project))
        return docs

    for root, _, files in os.walk(path):
        for fname in sorted(files):
            fpath = os.path.join(root, fname)
            if detect_format(fpath) != "unknown":
                docs.append(parse_file(fpath, project))

    return docs
