#!/usr/bin/env python3
"""
EKSADOPT DECODERS - Structured Output Normalization
---------------------------------------------------
The aws CLI answers in whatever format the operator configured (json,
yaml, yaml-stream). Every response passes through a DecoderChain that
turns it into one canonical form: plain dicts, lists and scalars.
Nothing downstream of the chain knows which encoding was used.

Priority: JSON fast path -> yq binary -> ruamel.yaml safe loader.

Author: EksAdopt Team
Date: 2026-10-19
"""

import json
import logging
from datetime import date, datetime
from typing import Any, List, Optional, Sequence

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from eksadopt.core.errors import DecoderUnavailableError, DiscoveryError
from eksadopt.core.runner import CommandRunner

logger = logging.getLogger("eksadopt.decoders")


class DecodeError(DiscoveryError):
    pass


class Decoder:
    name = "abstract"

    def available(self) -> bool:
        return True

    def accepts(self, text: str) -> bool:
        return True

    def decode(self, text: str) -> Any:
        raise NotImplementedError


class JsonDecoder(Decoder):
    """Canonical output is already JSON; only this decoder needs no external help."""

    name = "json"

    def accepts(self, text: str) -> bool:
        return text.lstrip()[:1] in ("{", "[")

    def decode(self, text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON output: {e}")


class YqDecoder(Decoder):
    """Preferred YAML converter when the yq binary is installed."""

    name = "yq"

    def __init__(self, runner: CommandRunner, binary: str = "yq"):
        self.runner = runner
        self.binary = binary

    def available(self) -> bool:
        return self.runner.which(self.binary) is not None

    def decode(self, text: str) -> Any:
        result = self.runner.run([self.binary, "eval", "-o=json", "."], input_text=text)
        if not result.ok:
            raise DecodeError(f"yq could not convert output: {result.stderr.strip()}")
        return json.loads(result.stdout)


class RuamelYamlDecoder(Decoder):
    name = "ruamel"

    def __init__(self):
        self.yaml = YAML(typ="safe", pure=True)

    def decode(self, text: str) -> Any:
        try:
            return _canonical(self.yaml.load(text))
        except YAMLError as e:
            raise DecodeError(f"Invalid YAML output: {e}")


def _canonical(node: Any) -> Any:
    """Turns YAML-native timestamps into the ISO strings the JSON output carries."""
    if isinstance(node, dict):
        return {str(k): _canonical(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_canonical(v) for v in node]
    if isinstance(node, (datetime, date)):
        return node.isoformat()
    return node


class DecoderChain:
    def __init__(self, yaml_decoders: Sequence[Decoder], json_decoder: Optional[Decoder] = None):
        self.json_decoder = json_decoder or JsonDecoder()
        self.yaml_decoders = list(yaml_decoders)
        self._resolved: Optional[Decoder] = None

    @classmethod
    def default(cls, runner: CommandRunner) -> "DecoderChain":
        return cls([YqDecoder(runner), RuamelYamlDecoder()])

    def available(self) -> List[str]:
        return [d.name for d in self.yaml_decoders if d.available()]

    def resolve(self) -> Decoder:
        """Returns the highest-priority YAML decoder that is installed."""
        if self._resolved is None:
            for decoder in self.yaml_decoders:
                if decoder.available():
                    logger.debug(f"YAML decoder resolved: {decoder.name}")
                    self._resolved = decoder
                    break
            else:
                raise DecoderUnavailableError(
                    "Cannot convert YAML output: install yq or ruamel.yaml, "
                    "or configure the aws CLI for JSON output"
                )
        return self._resolved

    def decode(self, text: str) -> Any:
        if not text.strip():
            return None
        if self.json_decoder.accepts(text):
            try:
                return self.json_decoder.decode(text)
            except DecodeError:
                logger.debug("Output looked like JSON but did not parse; trying YAML decoders")
        return self.resolve().decode(text)
