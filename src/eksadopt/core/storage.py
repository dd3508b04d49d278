#!/usr/bin/env python3
"""
EKSADOPT STORAGE - Atomic Artifact Writes
-----------------------------------------
All generated artifacts land through atomic_write: content goes to a
sibling temp file which is then renamed over the target, so a crash
leaves either the old file or the new one, never a torn write.
"""

import logging
import os
from pathlib import Path
from typing import Union

logger = logging.getLogger("eksadopt.storage")

TEMP_SUFFIX = ".eksadopt.tmp"


def ensure_dir(path: Path) -> Path:
    """Validates/Creates an artifact directory."""
    if not path.exists():
        logger.info(f"Creating missing directory: {path}")
        path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write(target_path: Path, content: Union[str, bytes], mode: int = 0o644) -> Path:
    target_path = Path(target_path)
    if not os.access(target_path.parent, os.W_OK):
        raise PermissionError(f"No write access to {target_path.parent}")
    temp_file = target_path.with_name(target_path.name + TEMP_SUFFIX)
    try:
        if isinstance(content, bytes):
            temp_file.write_bytes(content)
        else:
            temp_file.write_text(content, encoding="utf-8")
        os.chmod(temp_file, mode)
        os.replace(temp_file, target_path)
    except OSError as e:
        if temp_file.exists():
            temp_file.unlink()
        raise IOError(f"Atomic write failed for {target_path.name}: {e}")
    return target_path
