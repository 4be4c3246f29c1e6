"""package.json loading and minimal-diff rewriting.

Rewrites never re-serialize the whole document. The raw text is scanned for
the byte spans of the dependency members being edited and only those spans
are spliced, so indentation, key order, line endings and every untouched
member survive byte for byte.
"""

import contextlib
import json
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from json.decoder import scanstring
from pathlib import Path

from .errors import ParseError, PlanError
from .models import DEPENDENCY_FIELDS, Edit, Manifest

logger = logging.getLogger(__name__)

MANIFEST_FILE = "package.json"

_WS = " \t\n\r"
_BOM = "\ufeff"
_NUMBER = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][-+]?\d+)?")
_LITERALS = ("true", "false", "null", "NaN", "Infinity", "-Infinity")


@dataclass
class _Member:
    key: str
    key_start: int
    key_end: int
    value_start: int
    value_end: int
    value: "_Object | None" = None


@dataclass
class _Object:
    start: int  # offset of "{"
    end: int  # offset just past "}"
    members: list[_Member] = field(default_factory=list)

    def find(self, key: str) -> tuple[int, _Member] | None:
        # Last occurrence wins, matching json.loads
        for index in range(len(self.members) - 1, -1, -1):
            if self.members[index].key == key:
                return index, self.members[index]
        return None


class _Locator:
    """Finds member spans in JSON text that is already known to be valid."""

    def __init__(self, text: str):
        self.text = text

    def skip_ws(self, pos: int) -> int:
        while pos < len(self.text) and self.text[pos] in _WS:
            pos += 1
        return pos

    def expect(self, pos: int, char: str) -> int:
        if pos >= len(self.text) or self.text[pos] != char:
            raise ValueError(f"expected {char!r} at offset {pos}")
        return pos + 1

    def root(self) -> _Object:
        pos = 1 if self.text.startswith(_BOM) else 0
        return self.object(self.skip_ws(pos))

    def object(self, pos: int) -> _Object:
        obj = _Object(start=pos, end=pos)
        pos = self.skip_ws(self.expect(pos, "{"))
        if self.text[pos] == "}":
            obj.end = pos + 1
            return obj
        while True:
            key_start = pos
            key, pos = scanstring(self.text, self.expect(pos, '"'))
            key_end = pos
            pos = self.skip_ws(self.expect(self.skip_ws(pos), ":"))
            value_start = pos
            nested = None
            if self.text[pos] == "{":
                nested = self.object(pos)
                pos = nested.end
            else:
                pos = self.value(pos)
            obj.members.append(_Member(key, key_start, key_end, value_start, pos, nested))
            pos = self.skip_ws(pos)
            if self.text[pos] == ",":
                pos = self.skip_ws(pos + 1)
                continue
            obj.end = self.expect(pos, "}")
            return obj

    def value(self, pos: int) -> int:
        char = self.text[pos]
        if char == '"':
            _, end = scanstring(self.text, pos + 1)
            return end
        if char == "{":
            return self.object(pos).end
        if char == "[":
            pos = self.skip_ws(pos + 1)
            if self.text[pos] == "]":
                return pos + 1
            while True:
                pos = self.skip_ws(self.value(pos))
                if self.text[pos] == ",":
                    pos = self.skip_ws(pos + 1)
                    continue
                return self.expect(pos, "]")
        for literal in _LITERALS:
            if self.text.startswith(literal, pos):
                return pos + len(literal)
        match = _NUMBER.match(self.text, pos)
        if match:
            return match.end()
        raise ValueError(f"unexpected character {char!r} at offset {pos}")


def _leading_ws(text: str, pos: int) -> str:
    """Whitespace run immediately before ``pos``."""
    start = pos
    while start > 0 and text[start - 1] in _WS:
        start -= 1
    return text[start:pos]


def _line_indent(text: str, pos: int) -> str:
    ws = _leading_ws(text, pos)
    return ws.rsplit("\n", 1)[-1] if "\n" in ws else ""


def _newline(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


class ManifestStore:
    """Reads, parses, serializes and writes package.json files."""

    def load(self, path: Path) -> Manifest:
        """Read and parse a manifest from disk.

        Raises:
            ParseError: If the file is unreadable or malformed.
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8", newline="") as handle:
                text = handle.read()
        except UnicodeDecodeError as e:
            raise ParseError(path, f"not valid UTF-8: {e}") from e
        except OSError as e:
            raise ParseError(path, f"cannot read manifest: {e}") from e
        return self.loads(text, path)

    def loads(self, text: str, path: Path) -> Manifest:
        """Parse manifest text into a Manifest."""
        body = text[1:] if text.startswith(_BOM) else text
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise ParseError(path, f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ParseError(path, "top level must be a JSON object")

        name = data.get("name")
        if name is not None and not isinstance(name, str):
            raise ParseError(path, "'name' must be a string")

        fields: dict[str, dict[str, str]] = {}
        for key, value in data.items():
            if key not in DEPENDENCY_FIELDS:
                continue
            if not isinstance(value, dict):
                raise ParseError(path, f"'{key}' must be an object")
            for dep_name, dep_range in value.items():
                if not isinstance(dep_range, str):
                    raise ParseError(path, f"'{key}.{dep_name}' must be a version string")
            fields[key] = dict(value)

        return Manifest(path=Path(path), raw=text, name=name, fields=fields)

    def serialize(self, manifest: Manifest, edits: list[Edit]) -> str:
        """Return manifest text with ``edits`` applied.

        Only the edited members change; with no edits the raw text is
        returned unchanged.

        Raises:
            ParseError: If the raw text cannot be scanned.
            PlanError: If an edit targets a dependency that is not declared,
                or inserts one that already is.
        """
        text = manifest.raw
        for edit in edits:
            text = self._apply_edit(text, edit, manifest.path)
        return text

    def write(self, path: Path, text: str) -> None:
        """Replace ``path`` with ``text`` atomically."""
        path = Path(path)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(text)
            if path.exists():
                shutil.copymode(path, tmp)
            os.replace(tmp, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)
            raise
        logger.debug("Wrote %s", path)

    def _locate(self, text: str, path: Path) -> _Object:
        try:
            return _Locator(text).root()
        except (ValueError, IndexError) as e:
            raise ParseError(path, f"cannot locate members: {e}") from e

    def _apply_edit(self, text: str, edit: Edit, path: Path) -> str:
        root = self._locate(text, path)
        found_field = root.find(edit.field)

        if edit.old_range is None:
            if edit.new_range is None:
                return text
            entry_key, entry_value = json.dumps(edit.name), json.dumps(edit.new_range, ensure_ascii=False)
            if found_field is None:
                return self._insert_field(text, root, edit.field, entry_key, entry_value)
            _, field_member = found_field
            if field_member.value is None:
                raise ParseError(path, f"'{edit.field}' must be an object")
            if field_member.value.find(edit.name) is not None:
                raise PlanError(f"{path}: {edit.name} is already declared in {edit.field}")
            return self._insert_member(text, field_member, entry_key, entry_value, sort_key=edit.name)

        if found_field is None or found_field[1].value is None:
            raise PlanError(f"{path}: {edit.field} is not declared")
        field_index, field_member = found_field
        found_dep = field_member.value.find(edit.name)
        if found_dep is None:
            raise PlanError(f"{path}: {edit.name} is not declared in {edit.field}")
        dep_index, dep_member = found_dep

        if edit.new_range is None:
            if len(field_member.value.members) == 1:
                # Drop the emptied field entirely
                return self._remove_member(text, root, field_index)
            return self._remove_member(text, field_member.value, dep_index)

        replacement = json.dumps(edit.new_range, ensure_ascii=False)
        return text[:dep_member.value_start] + replacement + text[dep_member.value_end:]

    def _separator(self, text: str, obj: _Object) -> str:
        if obj.members:
            member = obj.members[0]
            return text[member.key_end:member.value_start]
        return ": "

    def _insert_member(self, text: str, owner: _Member, key: str, value: str, sort_key: str) -> str:
        obj = owner.value
        if not obj.members:
            nl = _newline(text)
            if "\n" not in text:
                inner = "{" + f"{key}: {value}" + "}"
            else:
                outer_indent = _line_indent(text, owner.key_start)
                unit = self._indent_unit(text)
                inner = "{" + nl + outer_indent + unit + f"{key}: {value}" + nl + outer_indent + "}"
            return text[:obj.start] + inner + text[obj.end:]

        entry = key + self._separator(text, obj) + value
        for member in obj.members:
            if member.key > sort_key:
                ws = _leading_ws(text, member.key_start)
                return text[:member.key_start] + entry + "," + ws + text[member.key_start:]
        last = obj.members[-1]
        ws = _leading_ws(text, last.key_start)
        return text[:last.value_end] + "," + ws + entry + text[last.value_end:]

    def _insert_field(self, text: str, root: _Object, field_name: str, key: str, value: str) -> str:
        nl = _newline(text)
        field_key = json.dumps(field_name)
        if "\n" not in text:
            block = f"{field_key}: " + "{" + f"{key}: {value}" + "}"
            ws = ""
        else:
            unit = self._indent_unit(text)
            block = f"{field_key}: " + "{" + nl + unit * 2 + f"{key}: {value}" + nl + unit + "}"
            ws = nl + unit

        if not root.members:
            closing = nl if ws else ""
            return text[:root.start + 1] + ws + block + closing + text[root.end - 1:]
        last = root.members[-1]
        ws = _leading_ws(text, last.key_start) or ws
        return text[:last.value_end] + "," + ws + block + text[last.value_end:]

    def _remove_member(self, text: str, obj: _Object, index: int) -> str:
        members = obj.members
        member = members[index]
        if len(members) == 1:
            return text[:obj.start + 1] + text[obj.end - 1:]
        if index < len(members) - 1:
            return text[:member.key_start] + text[members[index + 1].key_start:]
        return text[:members[index - 1].value_end] + text[member.value_end:]

    def _indent_unit(self, text: str) -> str:
        """Indentation of the first top-level member, two spaces by default."""
        root = _Locator(text).root()
        if root.members:
            indent = _line_indent(text, root.members[0].key_start)
            if indent:
                return indent
        return "  "

