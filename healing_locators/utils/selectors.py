from __future__ import annotations

import re
from dataclasses import dataclass, field

_BRACKETS = re.compile(r"\[[^\]]*\]")
_PSEUDO = re.compile(r"::?[a-zA-Z-]+(\([^)]*\))?")
_TAG = re.compile(r"^[a-zA-Z][a-zA-Z0-9-]*")
_ID = re.compile(r"#((?:\\.|[\w-])+)")
_CLASS = re.compile(r"\.((?:\\.|[\w-])+)")
_XPATH_STEP_TAG = re.compile(r"([a-zA-Z][a-zA-Z0-9-]*)\s*(\[|$)")
_XPATH_ATTRIBUTE = re.compile(r"@([\w-]+)\s*=\s*([\"'])(.*?)\2")
_CSS_UNESCAPE = re.compile(r"\\(?:([0-9a-fA-F]{1,6}) ?|(.))")


@dataclass(slots=True)
class SelectorParts:
    tag: str | None = None
    id: str | None = None
    classes: list[str] = field(default_factory=list)
    attributes: list[str] = field(default_factory=list)


def infer_selector_type(selector: str) -> str:
    stripped = selector.strip()
    if stripped.startswith("/") or stripped.startswith("("):
        return "xpath"
    return "css"


def css_escape(value: str) -> str:
    """Serializes a CSS identifier the way ``CSS.escape`` does."""

    result: list[str] = []
    for index, char in enumerate(value):
        code = ord(char)
        if code == 0:
            result.append("\ufffd")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            result.append(f"\\{code:x} ")
        elif index == 0 and char.isascii() and char.isdigit():
            result.append(f"\\{code:x} ")
        elif index == 1 and char.isascii() and char.isdigit() and value[0] == "-":
            result.append(f"\\{code:x} ")
        elif index == 0 and char == "-" and len(value) == 1:
            result.append("\\-")
        elif code >= 0x80 or char in "-_" or (char.isascii() and char.isalnum()):
            result.append(char)
        else:
            result.append(f"\\{char}")
    return "".join(result)


def css_unescape(value: str) -> str:
    def replace(match: re.Match) -> str:
        code_point, literal = match.groups()
        if code_point is None:
            return literal
        code = int(code_point, 16)
        if code == 0 or code > 0x10FFFF:
            return "\ufffd"
        return chr(code)

    return _CSS_UNESCAPE.sub(replace, value)


def css_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")
    return f'"{escaped}"'


def attribute_selector(name: str, value: str) -> str:
    return f"[{name}={css_string(value)}]"


def xpath_literal(value: str) -> str:
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    pieces = value.split('"')
    quoted = ", '\"', ".join(f'"{piece}"' for piece in pieces)
    return f"concat({quoted})"


def normalize_text(value: str | None) -> str:
    return " ".join((value or "").split())


def count_combinators(selector: str) -> int:
    return len(re.findall(r"[>\s+~]", selector))


def parse_selector(selector: str) -> SelectorParts:
    """Decomposes the target compound of a selector into tag, id, classes and attributes."""

    stripped = selector.strip()
    if infer_selector_type(stripped) == "xpath":
        return _parse_xpath(stripped)

    compound = _last_compound(stripped)
    attributes = [item[1:-1] for item in _BRACKETS.findall(compound)]
    bare = _PSEUDO.sub("", _BRACKETS.sub("", compound))
    tag_match = _TAG.match(bare)
    id_match = _ID.search(bare)
    return SelectorParts(
        tag=tag_match.group(0).lower() if tag_match else None,
        id=css_unescape(id_match.group(1)) if id_match else None,
        classes=[css_unescape(item) for item in _CLASS.findall(bare)],
        attributes=attributes,
    )


def _last_compound(selector: str) -> str:
    depth = 0
    start = 0
    for index, char in enumerate(selector):
        if char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        elif depth == 0 and (char in ">+~" or char.isspace()):
            start = index + 1
    return selector[start:].strip()


def _parse_xpath(selector: str) -> SelectorParts:
    last_step = selector.rstrip("/").rsplit("/", 1)[-1]
    tag_match = _XPATH_STEP_TAG.match(last_step)
    parts = SelectorParts(tag=tag_match.group(1).lower() if tag_match else None)
    for name, _, value in _XPATH_ATTRIBUTE.findall(last_step):
        if name == "id":
            parts.id = value
        elif name == "class":
            parts.classes.extend(value.split())
        else:
            parts.attributes.append(f"{name}={css_string(value)}")
    return parts
