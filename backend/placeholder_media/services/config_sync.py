"""Persistence for the placeholder registry.

Two file layouts are supported. ``JsonRegistryStore`` keeps the whole mapping in a JSON
document. ``ModuleRegistryStore`` owns a generated region inside a hand-maintained source
module: the object literal that follows a fixed declaration marker is replaced, and every
byte before the marker and after the literal's closing brace is left alone.

Both stores replace the target file wholesale through a sibling temp file, so a failed
write never leaves a half-written file behind.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from placeholder_media.core.config import Settings, settings as default_settings
from placeholder_media.core.errors import ConfigSyncError, MarkerNotFoundError
from placeholder_media.schemas.media import AssetDescriptor

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_BARE_KEY_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?([eE][-+]?\d+)?")
_INDENT = "  "


class RegistryStore(Protocol):
    def load(self) -> dict[str, AssetDescriptor]: ...

    def persist(self, snapshot: Mapping[str, AssetDescriptor]) -> None: ...


def _dump_descriptor(descriptor: AssetDescriptor) -> dict[str, Any]:
    return descriptor.model_dump(by_alias=True, exclude_none=True)


def _parse_entries(raw: Mapping[str, Any], *, source: Path) -> dict[str, AssetDescriptor]:
    assets: dict[str, AssetDescriptor] = {}
    for placeholder_id, payload in raw.items():
        try:
            assets[str(placeholder_id)] = AssetDescriptor.model_validate(payload)
        except ValidationError as exc:
            raise ConfigSyncError(f"invalid registry entry {placeholder_id!r} in {source}: {exc}") from exc
    return assets


def _write_replacing(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigSyncError(f"registry file {path} is not valid UTF-8: {exc.reason}") from exc


class JsonRegistryStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, AssetDescriptor]:
        if not self.path.exists():
            logger.info("media_registry_missing", extra={"path": str(self.path)})
            return {}
        try:
            raw = json.loads(_read_text(self.path) or "{}")
        except json.JSONDecodeError as exc:
            raise ConfigSyncError(f"registry file {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigSyncError(f"registry file {self.path} must contain an object")
        return _parse_entries(raw, source=self.path)

    def persist(self, snapshot: Mapping[str, AssetDescriptor]) -> None:
        payload = {key: _dump_descriptor(snapshot[key]) for key in sorted(snapshot)}
        _write_replacing(self.path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


# Object-literal rendering


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n").replace("\r", "\\r")
    return f"'{escaped}'"


def _render_key(key: str) -> str:
    # Keys that are not bare identifiers (hyphens, dots) use the bracketed form.
    return key if _IDENTIFIER_RE.match(key) else f"[{_quote(key)}]"


def render_literal(value: Any, depth: int = 0) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return _quote(value)
    pad = _INDENT * (depth + 1)
    closing = _INDENT * depth
    if isinstance(value, Mapping):
        if not value:
            return "{}"
        body = ",\n".join(f"{pad}{_render_key(str(key))}: {render_literal(item, depth + 1)}" for key, item in value.items())
        return "{\n" + body + "\n" + closing + "}"
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        body = ",\n".join(f"{pad}{render_literal(item, depth + 1)}" for item in value)
        return "[\n" + body + "\n" + closing + "]"
    raise TypeError(f"cannot render {type(value).__name__} as a literal")


def render_snapshot(snapshot: Mapping[str, AssetDescriptor]) -> str:
    return render_literal({key: _dump_descriptor(snapshot[key]) for key in sorted(snapshot)})


def _skip_string(text: str, pos: int) -> int:
    quote = text[pos]
    pos += 1
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if char == quote:
            return pos + 1
        pos += 1
    raise MarkerNotFoundError("unterminated string in generated region")


def _skip_comment(text: str, pos: int) -> int | None:
    """Return the offset just past a comment starting at `pos`, or None if there is none."""
    if text.startswith("//", pos):
        newline = text.find("\n", pos)
        return len(text) if newline < 0 else newline + 1
    if text.startswith("/*", pos):
        close = text.find("*/", pos + 2)
        if close < 0:
            raise MarkerNotFoundError("unterminated comment in generated region")
        return close + 2
    return None


def find_region(text: str, marker: str) -> tuple[int, int]:
    """Return `(start, end)` of the object literal that follows `marker`."""
    marker_at = text.find(marker)
    if marker_at < 0:
        raise MarkerNotFoundError(f"marker {marker.strip()!r} not found")
    start = marker_at + len(marker)
    while start < len(text) and text[start] in " \t\r\n":
        start += 1
    if start >= len(text) or text[start] != "{":
        raise MarkerNotFoundError("no object literal after marker")
    depth = 0
    pos = start
    while pos < len(text):
        char = text[pos]
        if char in "'\"`":
            pos = _skip_string(text, pos)
            continue
        after_comment = _skip_comment(text, pos)
        if after_comment is not None:
            pos = after_comment
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return start, pos + 1
        pos += 1
    raise MarkerNotFoundError("generated region is not closed")


class _LiteralReader:
    """Reads back the object-literal subset that `render_literal` writes."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _error(self, message: str) -> ConfigSyncError:
        return ConfigSyncError(f"{message} at offset {self.pos} of generated region")

    def _skip_space(self) -> None:
        text = self.text
        while self.pos < len(text):
            if text[self.pos].isspace():
                self.pos += 1
                continue
            after_comment = _skip_comment(text, self.pos)
            if after_comment is None:
                return
            self.pos = after_comment

    def _peek(self) -> str:
        self._skip_space()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _expect(self, char: str) -> None:
        if self._peek() != char:
            raise self._error(f"expected {char!r}")
        self.pos += 1

    def read(self) -> Any:
        value = self._value()
        if self._peek():
            raise self._error("trailing content")
        return value

    def _value(self) -> Any:
        char = self._peek()
        if char == "{":
            return self._object()
        if char == "[":
            return self._array()
        if char and char in "'\"":
            return self._string()
        match = _NUMBER_RE.match(self.text, self.pos)
        if match:
            self.pos = match.end()
            return float(match.group()) if match.group(1) or match.group(2) else int(match.group())
        for word, value in (("true", True), ("false", False), ("null", None), ("undefined", None)):
            if self.text.startswith(word, self.pos):
                self.pos += len(word)
                return value
        raise self._error("unexpected token")

    def _string(self) -> str:
        quote = self.text[self.pos]
        self.pos += 1
        chunks: list[str] = []
        escapes = {"n": "\n", "r": "\r", "t": "\t"}
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char == "\\":
                nxt = self.text[self.pos + 1 : self.pos + 2]
                chunks.append(escapes.get(nxt, nxt))
                self.pos += 2
                continue
            self.pos += 1
            if char == quote:
                return "".join(chunks)
            chunks.append(char)
        raise self._error("unterminated string")

    def _key(self) -> str:
        char = self._peek()
        if char == "[":
            self.pos += 1
            self._skip_space()
            key = self._string()
            self._expect("]")
            return key
        if char and char in "'\"":
            return self._string()
        match = _BARE_KEY_RE.match(self.text, self.pos)
        if not match:
            raise self._error("expected key")
        self.pos = match.end()
        return match.group()

    def _object(self) -> dict[str, Any]:
        self._expect("{")
        result: dict[str, Any] = {}
        while self._peek() != "}":
            key = self._key()
            self._expect(":")
            result[key] = self._value()
            if self._peek() == ",":
                self.pos += 1
            elif self._peek() != "}":
                raise self._error("expected ',' or '}'")
        self.pos += 1
        return result

    def _array(self) -> list[Any]:
        self._expect("[")
        items: list[Any] = []
        while self._peek() != "]":
            items.append(self._value())
            if self._peek() == ",":
                self.pos += 1
            elif self._peek() != "]":
                raise self._error("expected ',' or ']'")
        self.pos += 1
        return items


def read_literal(text: str) -> Any:
    return _LiteralReader(text).read()


class ModuleRegistryStore:
    """Keeps the generated region of a source module in step with the registry."""

    def __init__(self, path: str | Path, marker: str) -> None:
        self.path = Path(path)
        self.marker = marker

    def load(self) -> dict[str, AssetDescriptor]:
        text = _read_text(self.path)
        start, end = find_region(text, self.marker)
        raw = read_literal(text[start:end])
        if not isinstance(raw, dict):
            raise ConfigSyncError("generated region must be an object literal")
        return _parse_entries(raw, source=self.path)

    def persist(self, snapshot: Mapping[str, AssetDescriptor]) -> None:
        text = _read_text(self.path)
        # Raises before anything is written when the marker has drifted.
        start, end = find_region(text, self.marker)
        _write_replacing(self.path, text[:start] + render_snapshot(snapshot) + text[end:])
        logger.info("media_registry_region_rewritten", extra={"path": str(self.path), "entries": len(snapshot)})


def build_store(config: Settings | None = None) -> RegistryStore:
    cfg = config or default_settings
    if cfg.media_registry_format == "module":
        return ModuleRegistryStore(cfg.media_registry_path, cfg.media_registry_marker)
    return JsonRegistryStore(cfg.media_registry_path)
