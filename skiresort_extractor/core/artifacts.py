"""On-disk artifact I/O.

Every JSON document the extractor produces goes through write_json_atomic:
serialized with 2-space indentation and a trailing newline, written to a
temp file in the destination directory, then renamed over the target so
readers never observe a partial file.
"""

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from skiresort_extractor.errors import InvalidInputError

logger = logging.getLogger(__name__)


def sha256_text(text: str) -> str:
    """Hex sha256 of a UTF-8 string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_file(path: Path) -> str:
    """Hex sha256 of a file's bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def dump_json(data: Any) -> str:
    """Serialize to the canonical artifact text (2-space indent, trailing newline)."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_text_atomic(path: Path, text: str) -> None:
    """Write text to path via temp file + rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug(f"Wrote {path}")


def write_bytes_atomic(path: Path, payload: bytes) -> None:
    """Write bytes to path via temp file + rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_json_atomic(path: Path, data: Any) -> str:
    """Write a JSON artifact atomically.

    Returns:
        Hex sha256 of the written text.
    """
    text = dump_json(data)
    write_text_atomic(path=path, text=text)
    return sha256_text(text)


def read_json(path: Path, label: str = "JSON document") -> Any:
    """Read and parse a JSON file.

    Raises:
        InvalidInputError: If the file is missing or not valid JSON.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise InvalidInputError(f"{label} not found at {path}.") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"{label} at {path} is not valid JSON: {e.msg} (line {e.lineno}).") from e
