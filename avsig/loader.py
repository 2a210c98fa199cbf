"""Load policies and matcher snapshots from JSON or YAML documents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping

import yaml

from .errors import InvalidPolicy
from .policy import GenerationPolicy
from .regions import MatchSnapshot


YAML_SUFFIXES = {".yaml", ".yml"}


def read_document(path: Path) -> Any:
    """Parse ``path`` as YAML when the suffix says so, JSON otherwise."""

    text = path.read_text("utf-8")
    if path.suffix.lower() in YAML_SUFFIXES:
        return yaml.safe_load(text)
    return json.loads(text)


def load_snapshot(path: Path) -> MatchSnapshot:
    payload = read_document(path)
    if not isinstance(payload, Mapping):
        raise ValueError(f"{path}: snapshot must be a mapping")
    return MatchSnapshot.from_dict(payload)


def load_policies(path: Path) -> List[GenerationPolicy]:
    """Load one policy, a list of policies, or ``{"policies": [...]}``."""

    payload = read_document(path)
    if isinstance(payload, Mapping) and "policies" in payload:
        payload = payload["policies"]
    if isinstance(payload, Mapping):
        entries = [payload]
    elif isinstance(payload, list):
        entries = payload
    else:
        raise InvalidPolicy(f"{path}: expected a policy mapping or a list of policies")
    return [GenerationPolicy.from_dict(entry) for entry in entries]
