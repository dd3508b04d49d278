#!/usr/bin/env python3
"""
EKSADOPT ENCRYPTORS - Envelope Backends
---------------------------------------
Two interchangeable ways to turn the serialized secret document into
ciphertext, both keyed by a KMS key reference (alias ARN):

  * SopsEncryptor     - pipes the document through `sops --encrypt --kms`.
  * EnvelopeEncryptor - asks KMS for a data key and seals the document
                        with AES-256-GCM locally.

Plaintext only ever travels through memory and pipes. Every failure is an
EncryptionError; there is no plaintext fallback.

Author: EksAdopt Team
Date: 2026-10-19
"""

import base64
import io
import json
import logging
import os
from typing import Any, Dict, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from eksadopt.core.errors import EncryptionError
from eksadopt.core.runner import CommandRunner

logger = logging.getLogger("eksadopt.vault")

ENVELOPE_HEADER = "eksadopt_envelope"
ENVELOPE_VERSION = 1


class Encryptor:
    name = "abstract"

    def encrypt(self, plaintext: str, key_ref: str) -> str:
        raise NotImplementedError

    def decrypt(self, ciphertext: str, key_ref: str) -> str:
        raise NotImplementedError


class SopsEncryptor(Encryptor):
    name = "sops"

    def __init__(self, runner: CommandRunner, binary: str = "sops"):
        self.runner = runner
        self.binary = binary

    def available(self) -> bool:
        return self.runner.which(self.binary) is not None

    def encrypt(self, plaintext: str, key_ref: str) -> str:
        result = self.runner.run(
            [self.binary, "--encrypt", "--kms", key_ref,
             "--input-type", "yaml", "--output-type", "yaml", "/dev/stdin"],
            input_text=plaintext,
        )
        if not result.ok or not result.stdout.strip():
            raise EncryptionError(f"sops encryption failed: {result.stderr.strip()[:300]}", reason="sops-failed")
        return result.stdout

    def decrypt(self, ciphertext: str, key_ref: str) -> str:
        result = self.runner.run(
            [self.binary, "--decrypt", "--input-type", "yaml", "--output-type", "yaml", "/dev/stdin"],
            input_text=ciphertext,
        )
        if not result.ok:
            raise EncryptionError(f"sops decryption failed: {result.stderr.strip()[:300]}", reason="sops-failed")
        return result.stdout


class KeyService:
    """Source of data keys wrapped by a KMS master key."""

    def generate_data_key(self, key_ref: str) -> Tuple[bytes, bytes]:
        raise NotImplementedError

    def decrypt_data_key(self, wrapped: bytes, key_ref: str) -> bytes:
        raise NotImplementedError


class AwsKmsKeyService(KeyService):
    def __init__(self, runner: CommandRunner, region: str, binary: str = "aws"):
        self.runner = runner
        self.region = region
        self.binary = binary

    def _kms(self, args) -> Dict[str, Any]:
        argv = [self.binary, "kms", *args, "--region", self.region, "--output", "json"]
        result = self.runner.run(argv)
        if not result.ok:
            raise EncryptionError(f"kms {args[0]} failed: {result.stderr.strip()[:300]}", reason="kms-failed")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise EncryptionError(f"kms {args[0]} returned unparseable output: {e}", reason="kms-failed")

    def generate_data_key(self, key_ref: str) -> Tuple[bytes, bytes]:
        payload = self._kms(["generate-data-key", "--key-id", key_ref, "--key-spec", "AES_256"])
        return base64.b64decode(payload["Plaintext"]), base64.b64decode(payload["CiphertextBlob"])

    def decrypt_data_key(self, wrapped: bytes, key_ref: str) -> bytes:
        payload = self._kms([
            "decrypt", "--key-id", key_ref,
            "--ciphertext-blob", base64.b64encode(wrapped).decode("ascii"),
            "--cli-binary-format", "base64",
        ])
        return base64.b64decode(payload["Plaintext"])


class EnvelopeEncryptor(Encryptor):
    """
    AES-256-GCM under a per-document KMS data key. The key reference is
    bound in as associated data so a document cannot be replayed under a
    different key.
    """

    name = "envelope"

    def __init__(self, key_service: KeyService):
        self.key_service = key_service
        self.yaml = YAML(typ="safe", pure=True)
        self.yaml.default_flow_style = False

    def encrypt(self, plaintext: str, key_ref: str) -> str:
        data_key, wrapped = self.key_service.generate_data_key(key_ref)
        nonce = os.urandom(12)
        ciphertext = AESGCM(data_key).encrypt(nonce, plaintext.encode("utf-8"), key_ref.encode("utf-8"))
        envelope = {
            ENVELOPE_HEADER: {
                "version": ENVELOPE_VERSION,
                "key_ref": key_ref,
                "encrypted_key": base64.b64encode(wrapped).decode("ascii"),
                "nonce": base64.b64encode(nonce).decode("ascii"),
                "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
            }
        }
        stream = io.StringIO()
        self.yaml.dump(envelope, stream)
        return stream.getvalue()

    def decrypt(self, ciphertext: str, key_ref: str) -> str:
        try:
            envelope = (self.yaml.load(ciphertext) or {})[ENVELOPE_HEADER]
            wrapped = base64.b64decode(envelope["encrypted_key"])
            nonce = base64.b64decode(envelope["nonce"])
            sealed = base64.b64decode(envelope["ciphertext"])
            bound_ref = envelope["key_ref"]
        except (YAMLError, KeyError, TypeError, ValueError) as e:
            raise EncryptionError(f"Sealed document is not a valid envelope: {e}", reason="corrupt-envelope")
        if bound_ref != key_ref:
            raise EncryptionError(
                f"Sealed document is bound to {bound_ref}, not {key_ref}", reason="key-mismatch")
        data_key = self.key_service.decrypt_data_key(wrapped, key_ref)
        try:
            return AESGCM(data_key).decrypt(nonce, sealed, key_ref.encode("utf-8")).decode("utf-8")
        except InvalidTag:
            raise EncryptionError("Sealed document failed authentication", reason="tampered")


def build_encryptor(backend: str, runner: CommandRunner, region: str) -> Encryptor:
    if backend == "sops":
        return SopsEncryptor(runner)
    if backend == "envelope":
        return EnvelopeEncryptor(AwsKmsKeyService(runner, region))
    raise ValueError(f"Unknown encryption backend: {backend}")
