import json
import os

import yaml


def _is_stack(doc) -> bool:
    return isinstance(doc, dict) and isinstance(doc.get("resources"), list)


def detect_format(filepath: str) -> str:
    """
    Return 'json', 'yaml', or 'unknown'. Only files whose top level is a
    mapping with a ``resources`` list count as stack documents.
    """
    _, ext = os.path.splitext(filepath.lower())

    if ext == ".json":
        try:
            with open(filepath, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError):
            return "unknown"
        return "json" if _is_stack(data) else "unknown"

    if ext in (".yaml", ".yml"):
        try:
            with open(filepath, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError):
            return "unknown"
        return "yaml" if _is_stack(data) else "unknown"

    return "unknown"
