#!/usr/bin/env python3
"""
EKSADOPT CLASSIFIER - Sensitivity Policy
----------------------------------------
The SensitivityPolicy acts as a 'Gatekeeper' between discovery and the
vault. It evaluates every leaf attribute of every discovered record
against a versioned catalog of patterns and attaches exactly one
SensitivityTag to it. Anything the catalog does not know is treated as
high: an unknown field can never leak by omission.

Catalog rules are evaluated top to bottom, first match wins. Patterns
are shell-style globs over '<kind>.<attribute.path>'.

Author: EksAdopt Team
Date: 2026-10-19
"""

import json
import logging
from datetime import datetime, timezone
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from eksadopt.core.errors import PreflightError
from eksadopt.core.models import LiveResourceRecord, SecretDocument, SensitivityTag

logger = logging.getLogger("eksadopt.vault")

DEFAULT_CATALOG = Path(__file__).resolve().parents[1] / "catalog" / "sensitivity_v1.json"


class SensitivityPolicy:
    """
    The classification table: an ordered list of (pattern, tag) rules plus
    a fallback tag. Injected into the classifier so tests and operators
    can swap catalogs without code changes.
    """

    def __init__(self, version: str, rules: Iterable[Tuple[str, SensitivityTag]],
                 default: SensitivityTag = SensitivityTag.HIGH):
        self.version = version
        self.rules: List[Tuple[str, SensitivityTag]] = list(rules)
        self.default = default

    @classmethod
    def load(cls, catalog_path: Optional[Path] = None) -> "SensitivityPolicy":
        resolved = Path(catalog_path) if catalog_path else DEFAULT_CATALOG
        try:
            with open(resolved, "r", encoding="utf-8") as f:
                data = json.load(f)
            rules = [(r["pattern"], SensitivityTag(r["tag"])) for r in data["rules"]]
            default = SensitivityTag(data.get("default", "high"))
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Critical Failure: Unable to load sensitivity catalog from {resolved}")
            raise PreflightError(f"Failed to load sensitivity catalog {resolved}: {e}",
                                 reason=PreflightError.INVALID_CATALOG)
        logger.debug(f"Loaded {len(rules)} sensitivity rule(s) from {resolved.name}")
        return cls(str(data.get("version", resolved.stem)), rules, default)

    def tag_for(self, path: str) -> SensitivityTag:
        for pattern, tag in self.rules:
            if fnmatchcase(path, pattern):
                return tag
        return self.default


class SensitivityClassifier:
    def __init__(self, policy: SensitivityPolicy, clock=None):
        self.policy = policy
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def tag_record(self, record: LiveResourceRecord) -> Dict[str, SensitivityTag]:
        """Tags every leaf of one record; keys are '<attribute.path>'."""
        kind = record.kind.value
        return {path: self.policy.tag_for(f"{kind}.{path}") for path, _ in record.leaves()}

    def classify(self, records: Iterable[LiveResourceRecord],
                 extras: Optional[Mapping[str, Any]] = None) -> SecretDocument:
        """
        Builds the SecretDocument: every high/medium leaf of every record,
        keyed '<kind>.<external-id>.<attribute.path>', plus tagged extras
        such as the account id.
        """
        entries: Dict[str, Any] = {}
        counts = {tag: 0 for tag in SensitivityTag}

        for record in records:
            tags = self.tag_record(record)
            for path, value in record.leaves():
                tag = tags[path]
                counts[tag] += 1
                if tag.is_secret:
                    entries[f"{record.kind.value}.{record.external_id}.{path}"] = value

        for path, value in (extras or {}).items():
            tag = self.policy.tag_for(path)
            counts[tag] += 1
            if tag.is_secret:
                entries[path] = value

        logger.info(
            f"Classified {sum(counts.values())} field(s): "
            f"{counts[SensitivityTag.HIGH]} high, {counts[SensitivityTag.MEDIUM]} medium, "
            f"{counts[SensitivityTag.LOW]} low"
        )
        return SecretDocument(
            version=self.policy.version,
            created_at=self.clock().isoformat(),
            entries=entries,
        )
