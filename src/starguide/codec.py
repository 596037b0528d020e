"""Round-trip character records through their canonical TypeScript source.

Character files hold a single typed assignment::

    export const silverWolf: Character = { ... };

Encoding renders the record with a stable field order. Decoding locates the
assignment and reads the object literal with a small structural parser;
nothing from the file is ever evaluated.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .errors import MalformedDocumentError

DEFAULT_CHARACTER_DIR = "frontend/src/data/characters"
DEFAULT_TYPE_NAME = "Character"
DEFAULT_TYPES_IMPORT = "../../types"

_INDENT = "  "
_INLINE_LIMIT = 60
_MAX_DEPTH = 200

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_IDENTIFIER_AT = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_NUMBER_AT = re.compile(
    r"[+-]?(?:0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)
_SURROGATE_PAIR = re.compile("[\ud800-\udbff][\udc00-\udfff]")

_TEAMMATE_GROUPS = ("dps", "subDPS", "supportDPS", "amplifiers", "sustains")
_TEAMMATE_REC = ("id", "rating", "reason", "excluded", "theirInvestmentModifiers")
_TEAM = ("name", "characters", "rating", "structure", "notes")

_ROOT_ORDER = (
    "id",
    "name",
    "element",
    "path",
    "rarity",
    "roles",
    "description",
    "labels",
    "investment",
    "baseTeammates",
    "compositions",
    "restrictions",
    "teammates",
    "bestTeams",
    "teamStructures",
)

# Field order for nested structures, keyed by the field that holds them.
_NESTED_ORDER: dict[str, tuple[str, ...]] = {
    "investment": ("investmentPriority", "minimumViable", "eidolons", "lightCones"),
    "eidolons": ("level", "penalty", "description", "synergyModifiers"),
    "lightCones": (
        "id",
        "name",
        "rarity",
        "isSignature",
        "penalties",
        "notes",
        "playstyleNotes",
        "source",
        "synergyModifiers",
    ),
    "penalties": ("s1", "s5"),
    "synergyModifiers": ("withCharacterId", "modifier", "reason"),
    "theirInvestmentModifiers": ("level", "modifier", "reason"),
    "baseTeammates": _TEAMMATE_GROUPS,
    "teammates": _TEAMMATE_GROUPS,
    "teammateOverrides": _TEAMMATE_GROUPS,
    "dps": _TEAMMATE_REC,
    "subDPS": _TEAMMATE_REC,
    "supportDPS": _TEAMMATE_REC,
    "amplifiers": _TEAMMATE_REC,
    "sustains": _TEAMMATE_REC,
    "bestTeams": _TEAM,
    "teams": _TEAM,
    "compositions": (
        "id",
        "name",
        "description",
        "isPrimary",
        "coreMechanic",
        "structure",
        "weakModes",
        "investmentNotes",
        "pathRequirements",
        "labelRequirements",
        "core",
        "teammateOverrides",
        "teams",
    ),
    "structure": ("dps", "amplifier", "sustain"),
    "weakModes": ("mode", "reason"),
    "pathRequirements": ("path", "count", "reason"),
    "labelRequirements": ("label", "count", "reason"),
    "core": ("characterId", "minEidolon", "lightConeIds", "reason"),
    "restrictions": ("avoid", "warnings"),
    "avoid": ("id", "reason"),
    "teamStructures": ("preferred", "viable", "notes"),
}

_SECTION_BANNERS = {
    "investment": "INVESTMENT DATA",
    "baseTeammates": "BASE TEAMMATES (Apply to all compositions)",
    "compositions": "COMPOSITIONS",
    "teammates": "LEGACY (populated for backwards compatibility)",
}

_SIMPLE_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
}

_DECODE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}


class EncodeError(ValueError):
    """Raised when a record holds values that have no canonical rendering."""


def export_name(character_id: str) -> str:
    """Convert a kebab-case character id into its camelCase export name."""

    name = re.sub(r"-([a-z0-9])", lambda match: match.group(1).upper(), character_id)
    name = re.sub(r"[^A-Za-z0-9_$]", "_", name)
    if not name or name[0].isdigit():
        name = f"_{name}"
    return name


@dataclass(frozen=True)
class RecordCodec:
    """Encode and decode character records as TypeScript source units."""

    type_name: str = DEFAULT_TYPE_NAME
    types_import: str = DEFAULT_TYPES_IMPORT
    character_dir: str = DEFAULT_CHARACTER_DIR

    def encode(self, record: Mapping[str, Any], *, header_path: str | None = None) -> str:
        """Return the canonical source text for ``record``.

        Raises:
            EncodeError: If the record is not a mapping with a string ``id``
                or holds values that cannot be rendered.
        """

        if not isinstance(record, Mapping):
            raise EncodeError("Character record must be a mapping")
        character_id = record.get("id")
        if not isinstance(character_id, str) or not character_id.strip():
            raise EncodeError("Character record must have a non-empty string 'id'")

        path = header_path or f"{self.character_dir}/{character_id}.ts"
        lines = [
            f"// {path}",
            "",
            f"import type {{ {self.type_name} }} from {_quote(self.types_import)};",
            "",
            f"export const {export_name(character_id)}: {self.type_name} = {{",
        ]

        for key in _ordered_keys(record, _ROOT_ORDER):
            banner = _SECTION_BANNERS.get(key)
            if banner is not None or key in {"restrictions", "bestTeams", "teamStructures"}:
                lines.append("")
            if banner is not None:
                lines.append(f"{_INDENT}// ============================================")
                lines.append(f"{_INDENT}// {banner}")
                lines.append(f"{_INDENT}// ============================================")
            rendered = _render(record[key], _INDENT, key, depth=1)
            lines.append(f"{_INDENT}{_render_key(key)}: {rendered},")

        lines.append("};")
        lines.append("")
        return "\n".join(lines)

    def decode(self, text: str) -> dict[str, Any]:
        """Extract the typed assignment from ``text`` and return its record.

        Raises:
            MalformedDocumentError: If the assignment is missing or its object
                literal cannot be parsed.
        """

        pattern = re.compile(
            r"export\s+const\s+[A-Za-z_$][A-Za-z0-9_$]*\s*:\s*"
            + re.escape(self.type_name)
            + r"\s*=\s*"
        )
        match = pattern.search(text)
        if match is None:
            raise MalformedDocumentError(
                f"Could not find {self.type_name.lower()} object in file"
            )

        parser = _LiteralParser(text, match.end())
        value = parser.parse_value(depth=0)
        if not isinstance(value, dict):
            raise MalformedDocumentError(
                f"Expected an object literal at offset {match.end()}"
            )
        parser.skip_trivia()
        if parser.peek() == ";":
            parser.pos += 1
        return value


_DEFAULT_CODEC = RecordCodec()


def encode_record(record: Mapping[str, Any], *, header_path: str | None = None) -> str:
    """Encode ``record`` with the default :class:`RecordCodec`."""

    return _DEFAULT_CODEC.encode(record, header_path=header_path)


def decode_record(text: str) -> dict[str, Any]:
    """Decode ``text`` with the default :class:`RecordCodec`."""

    return _DEFAULT_CODEC.decode(text)


def quote_string(value: str) -> str:
    """Return ``value`` as a single-quoted TypeScript string literal."""

    return _quote(value)


def _ordered_keys(mapping: Mapping[Any, Any], preferred: Iterable[str]) -> list[str]:
    for key in mapping:
        if not isinstance(key, str):
            raise EncodeError(f"Mapping keys must be strings, got {key!r}")
    known = [key for key in preferred if key in mapping]
    seen = set(known)
    return known + sorted(key for key in mapping if key not in seen)


def _render(value: Any, indent: str, context: str | None, *, depth: int) -> str:
    if depth > _MAX_DEPTH:
        raise EncodeError("Record is nested too deeply to encode")

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise EncodeError(f"Cannot encode non-finite number {value!r}")
        return repr(value)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, Mapping):
        return _render_mapping(value, indent, context, depth=depth)
    if isinstance(value, (list, tuple)):
        return _render_sequence(value, indent, context, depth=depth)

    raise EncodeError(f"Cannot encode value of type {type(value).__name__}")


def _render_mapping(
    value: Mapping[str, Any], indent: str, context: str | None, *, depth: int
) -> str:
    if not value:
        return "{}"

    keys = _ordered_keys(value, _NESTED_ORDER.get(context or "", ()))
    inner = indent + _INDENT
    if all(_is_scalar(value[key]) for key in keys):
        inline = ", ".join(
            f"{_render_key(key)}: {_render(value[key], inner, key, depth=depth + 1)}"
            for key in keys
        )
        if len(inline) <= _INLINE_LIMIT:
            return f"{{ {inline} }}"

    lines = ["{"]
    for key in keys:
        rendered = _render(value[key], inner, key, depth=depth + 1)
        lines.append(f"{inner}{_render_key(key)}: {rendered},")
    lines.append(f"{indent}}}")
    return "\n".join(lines)


def _render_sequence(
    value: Iterable[Any], indent: str, context: str | None, *, depth: int
) -> str:
    items = list(value)
    if not items:
        return "[]"

    inner = indent + _INDENT
    if all(_is_scalar(item) for item in items):
        inline = ", ".join(_render(item, inner, None, depth=depth + 1) for item in items)
        if len(inline) <= _INLINE_LIMIT:
            return f"[{inline}]"

    lines = ["["]
    for item in items:
        # List elements take their field order from the list's own field name.
        lines.append(f"{inner}{_render(item, inner, context, depth=depth + 1)},")
    lines.append(f"{indent}]")
    return "\n".join(lines)


def _combine_surrogates(match: re.Match[str]) -> str:
    high, low = match.group(0)
    return chr(0x10000 + ((ord(high) - 0xD800) << 10) + (ord(low) - 0xDC00))


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (bool, int, float, str))


def _render_key(key: str) -> str:
    return key if _IDENTIFIER.match(key) else _quote(key)


def _quote(value: str) -> str:
    parts = []
    for char in value:
        escaped = _SIMPLE_ESCAPES.get(char)
        if escaped is not None:
            parts.append(escaped)
        elif (
            ord(char) < 0x20
            or ord(char) == 0x7F
            or char in "\u2028\u2029"
            or "\ud800" <= char <= "\udfff"
        ):
            parts.append(f"\\u{ord(char):04x}")
        else:
            parts.append(char)
    return "'" + "".join(parts) + "'"


class _LiteralParser:
    """Recursive-descent reader for TypeScript object literals."""

    def __init__(self, text: str, pos: int = 0) -> None:
        self.text = text
        self.pos = pos

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def fail(self, message: str) -> MalformedDocumentError:
        return MalformedDocumentError(f"{message} at offset {self.pos}")

    def skip_trivia(self) -> None:
        text = self.text
        while self.pos < len(text):
            char = text[self.pos]
            if char.isspace():
                self.pos += 1
            elif text.startswith("//", self.pos):
                newline = text.find("\n", self.pos)
                self.pos = len(text) if newline == -1 else newline + 1
            elif text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                if end == -1:
                    raise self.fail("Unterminated block comment")
                self.pos = end + 2
            else:
                break

    def parse_value(self, *, depth: int) -> Any:
        if depth > _MAX_DEPTH:
            raise self.fail("Object literal nested too deeply")

        self.skip_trivia()
        char = self.peek()
        if char == "{":
            return self.parse_object(depth=depth)
        if char == "[":
            return self.parse_array(depth=depth)
        if char in {"'", '"', "`"}:
            return self.parse_string()
        if char and (char.isdigit() or char in "+-."):
            return self.parse_number()

        match = _IDENTIFIER_AT.match(self.text, self.pos)
        if match is not None:
            word = match.group(0)
            if word == "true":
                self.pos = match.end()
                return True
            if word == "false":
                self.pos = match.end()
                return False
            if word in {"null", "undefined"}:
                self.pos = match.end()
                return None
            raise self.fail(f"Unsupported expression '{word}'")

        if not char:
            raise self.fail("Unexpected end of file")
        raise self.fail(f"Unexpected character {char!r}")

    def parse_object(self, *, depth: int) -> dict[str, Any]:
        self.pos += 1
        result: dict[str, Any] = {}
        while True:
            self.skip_trivia()
            char = self.peek()
            if char == "}":
                self.pos += 1
                return result

            key = self.parse_key()
            self.skip_trivia()
            if self.peek() != ":":
                raise self.fail(f"Expected ':' after key '{key}'")
            self.pos += 1
            result[key] = self.parse_value(depth=depth + 1)

            self.skip_trivia()
            char = self.peek()
            if char == ",":
                self.pos += 1
            elif char != "}":
                raise self.fail("Expected ',' or '}' in object literal")

    def parse_key(self) -> str:
        char = self.peek()
        if char in {"'", '"'}:
            return self.parse_string()
        if char and char.isdigit():
            number = self.parse_number()
            return str(number)
        match = _IDENTIFIER_AT.match(self.text, self.pos)
        if match is None:
            if not char:
                raise self.fail("Unexpected end of file")
            raise self.fail(f"Unexpected character {char!r} in object key")
        self.pos = match.end()
        return match.group(0)

    def parse_array(self, *, depth: int) -> list[Any]:
        self.pos += 1
        result: list[Any] = []
        while True:
            self.skip_trivia()
            if self.peek() == "]":
                self.pos += 1
                return result

            result.append(self.parse_value(depth=depth + 1))

            self.skip_trivia()
            char = self.peek()
            if char == ",":
                self.pos += 1
            elif char != "]":
                raise self.fail("Expected ',' or ']' in array literal")

    def parse_number(self) -> int | float:
        match = _NUMBER_AT.match(self.text, self.pos)
        if match is None:
            raise self.fail("Invalid number literal")
        literal = match.group(0)
        self.pos = match.end()

        unsigned = literal.lstrip("+-")
        negative = literal.startswith("-")
        if unsigned[:2] in {"0x", "0X"}:
            number = int(unsigned, 16)
            return -number if negative else number
        if any(marker in unsigned for marker in ".eE"):
            return float(literal)
        return int(literal)

    def parse_string(self) -> str:
        quote = self.text[self.pos]
        self.pos += 1
        text = self.text
        chunks: list[str] = []

        while True:
            if self.pos >= len(text):
                raise self.fail("Unterminated string literal")
            char = text[self.pos]

            if char == quote:
                self.pos += 1
                break
            if char == "\\":
                chunks.append(self._parse_escape())
                continue
            if quote == "`" and text.startswith("${", self.pos):
                raise self.fail("Template interpolation is not supported")
            if char in "\r\n" and quote != "`":
                raise self.fail("Unterminated string literal")

            chunks.append(char)
            self.pos += 1

        # Escaped surrogate pairs become one code point, lone halves are kept.
        return _SURROGATE_PAIR.sub(_combine_surrogates, "".join(chunks))

    def _parse_escape(self) -> str:
        text = self.text
        self.pos += 1
        if self.pos >= len(text):
            raise self.fail("Unterminated escape sequence")

        char = text[self.pos]
        self.pos += 1

        if char in _DECODE_ESCAPES:
            return _DECODE_ESCAPES[char]
        if char == "0" and not (self.peek().isdigit()):
            return "\0"
        if char == "x":
            return chr(self._read_hex(2))
        if char == "u":
            if self.peek() == "{":
                end = text.find("}", self.pos)
                if end == -1:
                    raise self.fail("Unterminated unicode escape")
                digits = text[self.pos + 1 : end]
                self.pos = end + 1
                try:
                    return chr(int(digits, 16))
                except ValueError as exc:
                    raise self.fail("Invalid unicode escape") from exc
            return chr(self._read_hex(4))
        if char == "\r":
            if self.peek() == "\n":
                self.pos += 1
            return ""
        if char in "\n\u2028\u2029":
            return ""
        return char

    def _read_hex(self, count: int) -> int:
        digits = self.text[self.pos : self.pos + count]
        if len(digits) != count or not all(c in "0123456789abcdefABCDEF" for c in digits):
            raise self.fail("Invalid hexadecimal escape")
        self.pos += count
        return int(digits, 16)


__all__ = [
    "DEFAULT_CHARACTER_DIR",
    "EncodeError",
    "RecordCodec",
    "decode_record",
    "encode_record",
    "export_name",
    "quote_string",
]
