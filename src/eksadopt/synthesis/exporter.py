#!/usr/bin/env python3
"""
EKSADOPT EXPORTER - Deterministic HCL Rendering
-----------------------------------------------
The Reconstructor: turns DesiredConfigUnits into OpenTofu source text.
Output is a pure function of its input; the same units always yield the
same bytes, which is what lets repeated runs be diffed meaningfully.

Value mapping:
    str / int / bool   -> literals (strings JSON-escaped, interpolation escaped)
    list               -> inline tuple   [a, b]
    dict               -> multi-line map with quoted keys
    Ref                -> bare expression (aws_eks_cluster.main.name)
    Block              -> nested block
    list of Block      -> repeated nested blocks

Author: EksAdopt Team
Date: 2026-10-19
"""

import json
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from eksadopt.core.models import Block, DesiredConfigUnit, Ref

INDENT = "  "


def hcl_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False).replace("${", "$${").replace("%{", "%%{")


def hcl_literal(value: Any) -> str:
    if isinstance(value, Ref):
        return value.expression
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return "null"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(hcl_literal(v) for v in value) + "]"
    return hcl_string(str(value))


def _is_block_value(value: Any) -> bool:
    if isinstance(value, Block):
        return True
    return isinstance(value, (list, tuple)) and bool(value) and all(isinstance(v, Block) for v in value)


class HclExporter:
    """
    Renders attribute mappings into HCL bodies. Within a body, plain
    attributes come first, then nested blocks, then maps, then the
    lifecycle block; anything else keeps its original relative position.
    """

    def __init__(self):
        self.preferred_order = ["attribute", "block", "map"]

    def _sort_keys(self, body: Mapping[str, Any]) -> List[str]:
        keys = list(body.keys())

        def sort_logic(key):
            value = body[key]
            if _is_block_value(value):
                group = "block"
            elif isinstance(value, Mapping):
                group = "map"
            else:
                group = "attribute"
            return (self.preferred_order.index(group), keys.index(key))

        return sorted(keys, key=sort_logic)

    def render_body(self, body: Mapping[str, Any], depth: int = 1,
                    ignore_changes: Sequence[str] = ()) -> List[str]:
        pad = INDENT * depth
        lines: List[str] = []
        group: List[Tuple[str, Any]] = []

        def flush():
            if not group:
                return
            width = max(len(k) for k, _ in group)
            for key, value in group:
                lines.append(f"{pad}{key.ljust(width)} = {hcl_literal(value)}")
            group.clear()

        for key in self._sort_keys(body):
            value = body[key]
            if _is_block_value(value):
                flush()
                for block in ([value] if isinstance(value, Block) else value):
                    if lines:
                        lines.append("")
                    lines.append(f"{pad}{key} {{")
                    lines.extend(self.render_body(block.body, depth + 1))
                    lines.append(f"{pad}}}")
            elif isinstance(value, Mapping):
                flush()
                if lines:
                    lines.append("")
                lines.extend(self._render_map(key, value, depth))
            else:
                group.append((key, value))
        flush()

        if ignore_changes:
            if lines:
                lines.append("")
            lines.append(f"{pad}lifecycle {{")
            lines.append(f"{pad}{INDENT}ignore_changes = [")
            for i, path in enumerate(ignore_changes):
                comma = "," if i < len(ignore_changes) - 1 else ""
                lines.append(f"{pad}{INDENT * 2}{path}{comma}")
            lines.append(f"{pad}{INDENT}]")
            lines.append(f"{pad}}}")
        return lines

    def _render_map(self, key: str, value: Mapping[str, Any], depth: int) -> List[str]:
        pad = INDENT * depth
        if not value:
            return [f"{pad}{key} = {{}}"]
        quoted = [(hcl_string(str(k)), v) for k, v in value.items()]
        width = max(len(k) for k, _ in quoted)
        lines = [f"{pad}{key} = {{"]
        for k, v in quoted:
            lines.append(f"{pad}{INDENT}{k.ljust(width)} = {hcl_literal(v)}")
        lines.append(f"{pad}}}")
        return lines

    def render_unit(self, unit: DesiredConfigUnit) -> str:
        lines = [f'resource "{unit.resource_type}" "{unit.name}" {{']
        lines.extend(self.render_body(unit.attributes, ignore_changes=unit.ignore_changes))
        lines.append("}")
        return "\n".join(lines) + "\n"

    def render_block(self, header: str, body: Mapping[str, Any]) -> str:
        lines = [f"{header} {{"]
        lines.extend(self.render_body(body))
        lines.append("}")
        return "\n".join(lines) + "\n"

    def render_import(self, unit: DesiredConfigUnit) -> str:
        return "\n".join([
            "import {",
            f"{INDENT}to = {unit.address}",
            f"{INDENT}id = {hcl_string(unit.import_id)}",
            "}",
        ]) + "\n"

    def render_assignments(self, values: Dict[str, Any]) -> str:
        """Flat `key = value` file, as used for -backend-config tfvars."""
        return "\n".join(self.render_body(values, depth=0)) + "\n"
