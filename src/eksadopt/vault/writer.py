#!/usr/bin/env python3
"""
EKSADOPT VAULT WRITER - Sealed Secret Persistence
-------------------------------------------------
Takes a SecretDocument to disk without ever letting it touch disk:

    1. Serialize      - YAML into an in-memory buffer.
    2. Encrypt        - through the configured Encryptor, still in memory.
    3. Reuse check    - an existing sealed document is decrypted in memory
                        and compared; identical entries are left alone.
    4. Atomic write   - ciphertext only, temp file + rename.

Plaintext secret variants found on disk are swept before sealing and at
every terminal state of the workflow.

Author: EksAdopt Team
Date: 2026-10-19
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from eksadopt.core.errors import EncryptionError
from eksadopt.core.models import SecretDocument
from eksadopt.core.storage import atomic_write
from eksadopt.vault.encryptors import Encryptor

logger = logging.getLogger("eksadopt.vault")

SEAL_WRITTEN = "written"
SEAL_REUSED = "reused"
SEAL_RESEALED = "resealed"


@dataclass(frozen=True)
class SealResult:
    path: Path
    status: str          # written | reused | resealed
    entry_count: int


class SecretVaultWriter:
    def __init__(self, encryptor: Encryptor, sealed_path: Path,
                 plaintext_variants: Sequence[Path] = ()):
        self.encryptor = encryptor
        self.sealed_path = Path(sealed_path)
        self.plaintext_variants = [Path(p) for p in plaintext_variants]
        self.yaml = YAML(typ="safe", pure=True)
        self.yaml.default_flow_style = False

    def serialize(self, doc: SecretDocument) -> str:
        stream = io.StringIO()
        self.yaml.dump(doc.to_dict(), stream)
        return stream.getvalue()

    def parse(self, text: str) -> SecretDocument:
        try:
            return SecretDocument.from_dict(self.yaml.load(text) or {})
        except (YAMLError, AttributeError) as e:
            raise EncryptionError(f"Decrypted secret document is malformed: {e}", reason="corrupt-document")

    def seal(self, doc: SecretDocument, key_ref: str) -> SealResult:
        self.purge_plaintext()
        status = SEAL_WRITTEN
        if self.sealed_path.exists():
            existing = self._open_existing(key_ref)
            if existing is not None and existing.entries == doc.entries and existing.version == doc.version:
                logger.info(f"Sealed document {self.sealed_path.name} is current; reusing it")
                return SealResult(self.sealed_path, SEAL_REUSED, len(doc.entries))
            status = SEAL_RESEALED

        ciphertext = self.encryptor.encrypt(self.serialize(doc), key_ref)
        if not ciphertext.strip():
            raise EncryptionError("Encryptor returned an empty document", reason="empty-ciphertext")
        try:
            atomic_write(self.sealed_path, ciphertext, mode=0o600)
        except (IOError, PermissionError) as e:
            raise EncryptionError(f"Unable to persist sealed document: {e}", reason="write-failed")
        logger.info(f"Sealed {len(doc.entries)} secret field(s) into {self.sealed_path.name} ({status})")
        return SealResult(self.sealed_path, status, len(doc.entries))

    def reveal(self, key_ref: str) -> SecretDocument:
        """Decrypts the sealed document in memory. Nothing is written."""
        if not self.sealed_path.exists():
            raise EncryptionError(f"No sealed document at {self.sealed_path}", reason="missing-document")
        plaintext = self.encryptor.decrypt(self.sealed_path.read_text(encoding="utf-8"), key_ref)
        return self.parse(plaintext)

    def purge_plaintext(self) -> List[Path]:
        removed = []
        for variant in self.plaintext_variants:
            if variant.exists():
                logger.warning(f"Removing plaintext secret document {variant.name}")
                variant.unlink()
                removed.append(variant)
        return removed

    def _open_existing(self, key_ref: str) -> Optional[SecretDocument]:
        try:
            return self.reveal(key_ref)
        except EncryptionError as e:
            logger.warning(f"Existing sealed document could not be opened ({e}); it will be replaced")
            return None


def render_sops_config(key_arn: str) -> str:
    """`.sops.yaml` binding every secrets document in the repo to the key."""
    yaml = YAML(typ="safe", pure=True)
    yaml.default_flow_style = False
    stream = io.StringIO()
    yaml.dump({"creation_rules": [{"path_regex": r".*secrets.*\.yaml$", "kms": key_arn}]}, stream)
    return stream.getvalue()
