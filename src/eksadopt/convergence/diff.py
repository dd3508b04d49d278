#!/usr/bin/env python3
"""
EKSADOPT DIFF - Field-Level Comparison
--------------------------------------
Structural comparison between a desired attribute tree and a live one,
in the engine's planned form: nested blocks are one-item lists, references
compare by their resolved value. Paths are rendered the way the engine
prints them, e.g. aws_eks_node_group.dask_workers.scaling_config[0].max_size.
"""

import re
from typing import Any, List, Mapping, Sequence, Tuple, Union

from eksadopt.core.models import Block, DesiredConfigUnit, Mismatch, Ref

PathPart = Union[str, int]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_IGNORE_TOKEN = re.compile(r'\["((?:[^"\\]|\\.)*)"\]|\[(\d+)\]|\.?([A-Za-z_][A-Za-z0-9_-]*)')


def format_path(address: str, parts: Sequence[PathPart]) -> str:
    out = address
    for part in parts:
        if isinstance(part, int):
            out += f"[{part}]"
        elif _IDENTIFIER.match(part):
            out += f".{part}"
        else:
            out += f'["{part}"]'
    return out


def parse_ignore_path(expression: str) -> List[PathPart]:
    """'launch_template[0].version' -> ['launch_template', 0, 'version']"""
    parts: List[PathPart] = []
    for quoted, index, name in _IGNORE_TOKEN.findall(expression):
        if index:
            parts.append(int(index))
        elif name:
            parts.append(name)
        else:
            parts.append(quoted)
    return parts


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def planned_form(value: Any) -> Any:
    if isinstance(value, Ref):
        return value.value
    if isinstance(value, Block):
        return [planned_form(dict(value.body))]
    if isinstance(value, Mapping):
        return {k: planned_form(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        # Repeated blocks plan as a list of bodies, not a list of one-item lists
        return [planned_form(dict(v.body)) if isinstance(v, Block) else planned_form(v) for v in value]
    return value


def diff_values(desired: Any, live: Any, prefix: Tuple[PathPart, ...] = ()) -> List[Tuple[Tuple[PathPart, ...], Any, Any]]:
    if isinstance(desired, Mapping) and isinstance(live, Mapping):
        found = []
        keys = list(desired.keys()) + [k for k in live.keys() if k not in desired]
        for key in keys:
            d, l = desired.get(key), live.get(key)
            if _is_empty(d) and _is_empty(l):
                continue
            found.extend(diff_values(d, l, prefix + (key,)))
        return found
    if isinstance(desired, list) and isinstance(live, list) and len(desired) == len(live):
        found = []
        for index, (d, l) in enumerate(zip(desired, live)):
            found.extend(diff_values(d, l, prefix + (index,)))
        return found
    if desired == live:
        return []
    return [(prefix, desired, live)]


def is_ignored(parts: Sequence[PathPart], ignore_changes: Sequence[str]) -> bool:
    for expression in ignore_changes:
        ignored = parse_ignore_path(expression)
        if ignored and list(parts[:len(ignored)]) == ignored:
            return True
    return False


def compare_unit(unit: DesiredConfigUnit, live_view: Mapping[str, Any]) -> List[Mismatch]:
    """
    Diffs one unit against the live attributes of the same resource,
    already in planned form. Fields empty on both sides never count.
    """
    desired = planned_form(dict(unit.attributes))
    mismatches = []
    for parts, d, l in diff_values(desired, dict(live_view)):
        if is_ignored(parts, unit.ignore_changes):
            continue
        mismatches.append(Mismatch(format_path(unit.address, parts), d, l))
    return mismatches
