"""Read, query and rewrite Xcode ``project.pbxproj`` files.

The file is an old-style (OpenStep) property list whose ``objects`` table
holds every node of the project: targets, build phases, groups, file
references and build configurations, each addressed by a 24-character
identifier.  :class:`ProjectGraph` keeps those nodes in an arena keyed by
identifier, with an ``isa`` index built once at parse time; cross-references
are plain identifier strings, never live object links.

Round-trip fidelity: objects that are not touched are written back
byte-for-byte from the original text.  Only added, removed or modified
objects are rendered, in the layout Xcode itself writes, so a file Xcode
produced comes back unchanged after an add/remove cycle.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from nativelink.errors import ProjectFileError

logger = logging.getLogger(__name__)

APPLICATION = "com.apple.product-type.application"
STATIC_LIBRARY = "com.apple.product-type.library.static"

# Isa kinds Xcode writes on a single line.
_INLINE_ISAS = {"PBXBuildFile", "PBXFileReference"}

_WS_RE = re.compile(r"\s+")
_HSPACE_RE = re.compile(r"[ \t]*")
_QUOTED_RE = re.compile(r'"(?:[^"\\]|\\.)*"', re.S)
# Unquoted scalars may contain "/" as long as it does not open a comment.
_WORD_RE = re.compile(r'(?:[^\s{}()=;,"/]|/(?![/*]))+')
_BARE_RE = re.compile(r"[A-Za-z0-9_$/:.]+")
_SECTION_RE = re.compile(r"^/\* (Begin|End) (\w+) section \*/[^\n]*\n?", re.M)
_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}


def quote(value: str) -> str:
    """Return *value* as a plist scalar, quoted only when needed."""
    if _BARE_RE.fullmatch(value):
        return value
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), text[1:-1])
    return text


def stable_id(seed: str) -> str:
    """Derive a 24-character object identifier from *seed*."""
    return hashlib.md5(seed.encode("utf-8"), usedforsecurity=False).hexdigest()[:24].upper()


@dataclass
class Atom:
    """A scalar exactly as written, plus the ``/* ... */`` comment after it."""

    text: str
    comment: str | None = None

    @classmethod
    def of(cls, value: str, comment: str | None = None) -> Atom:
        return cls(quote(value), comment)

    @property
    def value(self) -> str:
        return unquote(self.text)


class PbxDict(dict):
    """Insertion-ordered mapping that remembers how each key was written."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.raw_keys: dict[str, Atom] = {}

    def key_atom(self, key: str) -> Atom:
        return self.raw_keys.get(key) or Atom.of(key)

    def insert_sorted(self, key: str, value: Value) -> None:
        """Add *key* before the first existing key that sorts after it."""
        if key in self:
            self[key] = value
            return
        items = list(self.items())
        pos = next((i for i, (k, _) in enumerate(items) if k > key), len(items))
        items.insert(pos, (key, value))
        self.clear()
        self.update(items)


Value = Union[Atom, PbxDict, list]


def to_value(value) -> Value:
    """Convert plain Python strings, lists and dicts into plist values."""
    if isinstance(value, (Atom, PbxDict)):
        return value
    if isinstance(value, str):
        return Atom.of(value)
    if isinstance(value, list):
        return [to_value(v) for v in value]
    if isinstance(value, dict):
        return PbxDict((k, to_value(v)) for k, v in value.items())
    raise TypeError(f"unsupported plist value: {value!r}")


@dataclass
class PbxObject:
    """One node of the ``objects`` table; *fields* is its full key/value bag."""

    id: str
    fields: PbxDict
    comment: str | None = None

    @property
    def isa(self) -> str:
        return self.get("isa") or ""

    def get(self, key: str) -> str | None:
        value = self.fields.get(key)
        return value.value if isinstance(value, Atom) else None

    def ref_atoms(self, key: str) -> list[Atom]:
        value = self.fields.get(key)
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, Atom)]

    def refs(self, key: str) -> list[str]:
        return [atom.value for atom in self.ref_atoms(key)]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass
class _Span:
    start: int
    end: int
    indent: str
    whole_line: bool
    inline: bool


@dataclass
class _Section:
    isa: str
    begin_start: int
    begin_end: int
    end_start: int
    end_end: int
    members: list[str] = field(default_factory=list)


class _Parser:
    def __init__(self, text: str, source: str):
        self.text = text
        self.source = source
        self.pos = 0
        self.spans: dict[str, tuple[int, int, bool]] = {}
        self.objects_close = -1
        self._last_close = -1

    def error(self, reason: str) -> ProjectFileError:
        line = self.text.count("\n", 0, self.pos) + 1
        return ProjectFileError(self.source, reason, line)

    def skip(self) -> None:
        text = self.text
        while True:
            m = _WS_RE.match(text, self.pos)
            if m:
                self.pos = m.end()
            if text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                if end == -1:
                    raise self.error("unterminated comment")
                self.pos = end + 2
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = len(text) if end == -1 else end + 1
            else:
                return

    def trailing_comment(self) -> str | None:
        p = _HSPACE_RE.match(self.text, self.pos).end()
        if not self.text.startswith("/*", p):
            return None
        end = self.text.find("*/", p + 2)
        if end == -1:
            raise self.error("unterminated comment")
        self.pos = end + 2
        return self.text[p + 2 : end].strip()

    def expect(self, char: str) -> None:
        self.skip()
        if self.text[self.pos : self.pos + 1] != char:
            raise self.error(f"expected {char!r}")
        self.pos += 1

    def atom(self) -> Atom:
        self.skip()
        m = _QUOTED_RE.match(self.text, self.pos) or _WORD_RE.match(self.text, self.pos)
        if not m:
            raise self.error("expected a value")
        self.pos = m.end()
        return Atom(m.group(0), self.trailing_comment())

    def value(self) -> Value:
        self.skip()
        char = self.text[self.pos : self.pos + 1]
        if char == "{":
            self.pos += 1
            return self.dictionary()
        if char == "(":
            self.pos += 1
            return self.array()
        return self.atom()

    def array(self) -> list:
        items: list = []
        while True:
            self.skip()
            if self.pos >= len(self.text):
                raise self.error("unterminated list")
            if self.text[self.pos] == ")":
                self.pos += 1
                return items
            items.append(self.value())
            self.skip()
            char = self.text[self.pos : self.pos + 1]
            if char == ",":
                self.pos += 1
            elif char != ")":
                raise self.error("expected ',' or ')'")

    def dictionary(self, top: bool = False, spans: dict | None = None) -> PbxDict:
        result = PbxDict()
        while True:
            self.skip()
            if self.pos >= len(self.text):
                raise self.error("unterminated dictionary")
            if self.text[self.pos] == "}":
                self._last_close = self.pos
                self.pos += 1
                return result
            start = self.pos
            key = self.atom()
            self.expect("=")
            value_start = self.pos
            if top and key.value == "objects":
                self.expect("{")
                value = self.dictionary(spans=self.spans)
                self.objects_close = self._last_close
            else:
                value = self.value()
            self.expect(";")
            result[key.value] = value
            result.raw_keys[key.value] = key
            if spans is not None:
                inline = "\n" not in self.text[value_start : self.pos]
                spans[key.value] = (start, self.pos, inline)

    def parse(self) -> PbxDict:
        self.skip()
        self.expect("{")
        root = self.dictionary(top=True)
        self.skip()
        if self.pos != len(self.text):
            raise self.error("unexpected content after the root dictionary")
        if self.objects_close < 0:
            raise self.error("no objects table")
        return root


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _render_atom(atom: Atom) -> str:
    if atom.comment is not None:
        return f"{atom.text} /* {atom.comment} */"
    return atom.text


def _render_block(value: Value, indent: str) -> str:
    if isinstance(value, PbxDict):
        inner = indent + "\t"
        lines = ["{"]
        for key, item in value.items():
            lines.append(
                f"{inner}{_render_atom(value.key_atom(key))} = "
                f"{_render_block(item, inner)};"
            )
        lines.append(indent + "}")
        return "\n".join(lines)
    if isinstance(value, list):
        inner = indent + "\t"
        lines = ["("]
        lines.extend(f"{inner}{_render_block(item, inner)}," for item in value)
        lines.append(indent + ")")
        return "\n".join(lines)
    return _render_atom(value)


def _render_inline(value: Value) -> str:
    if isinstance(value, PbxDict):
        body = "".join(
            f"{_render_atom(value.key_atom(k))} = {_render_inline(v)}; "
            for k, v in value.items()
        )
        return "{" + body + "}"
    if isinstance(value, list):
        return "(" + "".join(f"{_render_inline(v)}, " for v in value) + ")"
    return _render_atom(value)


def _render_object(obj: PbxObject, indent: str, inline: bool, whole_line: bool) -> str:
    key = _render_atom(Atom(obj.id, obj.comment))
    if inline:
        body = _render_inline(obj.fields)
    else:
        body = _render_block(obj.fields, indent)
    text = f"{indent}{key} = {body};"
    return text + "\n" if whole_line else text


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class ProjectGraph:
    """Arena of pbxproj objects with queries and tracked mutations."""

    def __init__(self, text: str, source: str = "project.pbxproj"):
        self.source = source
        self._load(text)

    @classmethod
    def load(cls, path: Path) -> ProjectGraph:
        try:
            text = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ProjectFileError(str(path), str(e)) from e
        return cls(text, str(path))

    def _load(self, text: str) -> None:
        parser = _Parser(text, self.source)
        self.root = parser.parse()
        self._text = text
        self._objects_close = parser.objects_close

        table = self.root["objects"]
        self.objects: dict[str, PbxObject] = {}
        self._by_isa: dict[str, list[str]] = defaultdict(list)
        for oid, fields in table.items():
            if not isinstance(fields, PbxDict):
                raise ProjectFileError(self.source, f"object {oid} is not a dictionary")
            obj = PbxObject(oid, fields, table.key_atom(oid).comment)
            self.objects[oid] = obj
            self._by_isa[obj.isa].append(oid)

        self._spans: dict[str, _Span] = {}
        for oid, (start, end, inline) in parser.spans.items():
            self._spans[oid] = self._line_span(start, end, inline)
        self._sections = self._find_sections()

        self._added: list[str] = []
        self._removed: set[str] = set()
        self._dirty: set[str] = set()

    def _line_span(self, start: int, end: int, inline: bool) -> _Span:
        text = self._text
        line_start = text.rfind("\n", 0, start) + 1
        indent = text[line_start:start]
        line_end = text.find("\n", end)
        rest = text[end:] if line_end == -1 else text[end:line_end]
        if indent.strip() or rest.strip():
            return _Span(start, end, "", False, inline)
        stop = len(text) if line_end == -1 else line_end + 1
        return _Span(line_start, stop, indent, True, inline)

    def _find_sections(self) -> dict[str, _Section]:
        sections: dict[str, _Section] = {}
        open_: dict[str, re.Match[str]] = {}
        for m in _SECTION_RE.finditer(self._text, 0, self._objects_close):
            kind, isa = m.group(1), m.group(2)
            if kind == "Begin":
                open_[isa] = m
            elif isa in open_:
                begin = open_.pop(isa)
                sections[isa] = _Section(isa, begin.start(), begin.end(), m.start(), m.end())
        for oid, span in self._spans.items():
            isa = self.objects[oid].isa
            section = sections.get(isa)
            if section and section.begin_end <= span.start and span.end <= section.end_start:
                section.members.append(oid)
        return sections

    # -- queries ------------------------------------------------------------

    def get(self, oid: str | None) -> PbxObject | None:
        if oid is None:
            return None
        return self.objects.get(oid)

    def objects_of(self, isa: str) -> list[PbxObject]:
        return [self.objects[oid] for oid in self._by_isa.get(isa, [])]

    @property
    def project(self) -> PbxObject:
        root_object = self.root.get("rootObject")
        obj = self.get(root_object.value if isinstance(root_object, Atom) else None)
        if obj is None:
            raise ProjectFileError(self.source, "rootObject does not resolve")
        return obj

    @property
    def main_group(self) -> PbxObject | None:
        return self.get(self.project.get("mainGroup"))

    def targets(self) -> list[PbxObject]:
        """Native targets, in the order the project lists them."""
        found = [self.get(ref) for ref in self.project.refs("targets")]
        return [t for t in found if t is not None and t.isa == "PBXNativeTarget"]

    def application_targets(self) -> list[PbxObject]:
        return [t for t in self.targets() if t.get("productType") == APPLICATION]

    def build_configurations(self, target: PbxObject) -> list[PbxObject]:
        config_list = self.get(target.get("buildConfigurationList"))
        if config_list is None:
            return []
        found = [self.get(ref) for ref in config_list.refs("buildConfigurations")]
        return [c for c in found if c is not None]

    @staticmethod
    def build_settings(configuration: PbxObject) -> PbxDict:
        settings = configuration.fields.get("buildSettings")
        return settings if isinstance(settings, PbxDict) else PbxDict()

    def is_tvos(self, target: PbxObject) -> bool:
        for configuration in self.build_configurations(target):
            sdk = self.build_settings(configuration).get("SDKROOT")
            if isinstance(sdk, Atom) and sdk.value == "appletvos":
                return True
        return False

    def products(self, product_type: str = STATIC_LIBRARY) -> list[str]:
        """File names of the products native targets of *product_type* build."""
        names: list[str] = []
        for target in self.objects_of("PBXNativeTarget"):
            if target.get("productType") != product_type:
                continue
            ref = self.get(target.get("productReference"))
            if ref is None:
                continue
            name = ref.get("path") or ref.get("name")
            if name:
                names.append(name)
        return names

    def build_phase(self, target: PbxObject, isa: str) -> PbxObject | None:
        for ref in target.refs("buildPhases"):
            phase = self.get(ref)
            if phase is not None and phase.isa == isa:
                return phase
        return None

    def find_group(self, name: str, parent: PbxObject | None = None) -> PbxObject | None:
        """Return the child group called *name* of *parent* (default: main group)."""
        parent = parent or self.main_group
        if parent is None:
            return None
        for ref in parent.refs("children"):
            child = self.get(ref)
            if child is not None and child.isa == "PBXGroup":
                if (child.get("name") or child.get("path")) == name:
                    return child
        return None

    def referrers(self, isa: str, key: str, oid: str) -> list[PbxObject]:
        """Objects of *isa* whose scalar field *key* is *oid*."""
        return [obj for obj in self.objects_of(isa) if obj.get(key) == oid]

    # -- mutations ----------------------------------------------------------

    def new_id(self, seed: str) -> str:
        oid = stable_id(seed)
        while oid in self.objects:
            seed += "+"
            oid = stable_id(seed)
        return oid

    def add_object(
        self, isa: str, fields: dict, comment: str | None = None, *, seed: str
    ) -> PbxObject:
        """Create a node; keys are written after ``isa`` in sorted order."""
        bag = PbxDict()
        bag["isa"] = Atom(isa)
        for key in sorted(fields):
            bag[key] = to_value(fields[key])
        obj = PbxObject(self.new_id(seed), bag, comment)
        self.objects[obj.id] = obj
        self._by_isa[isa].append(obj.id)
        self._added.append(obj.id)
        logger.debug("Added %s %s (%s)", isa, obj.id, comment or "")
        return obj

    def remove_object(self, oid: str) -> bool:
        obj = self.objects.pop(oid, None)
        if obj is None:
            return False
        self._by_isa[obj.isa].remove(oid)
        self._removed.add(oid)
        logger.debug("Removed %s %s (%s)", obj.isa, oid, obj.comment or "")
        return True

    def touch(self, oid: str) -> None:
        self._dirty.add(oid)

    def append_ref(self, owner: PbxObject, key: str, ref: str, comment: str | None) -> bool:
        """Append *ref* to the list field *key* of *owner* unless present."""
        items = owner.fields.get(key)
        if not isinstance(items, list):
            items = []
            owner.fields[key] = items
        if any(isinstance(i, Atom) and i.value == ref for i in items):
            return False
        items.append(Atom(ref, comment))
        self.touch(owner.id)
        return True

    def remove_ref(self, owner: PbxObject, key: str, ref: str) -> bool:
        items = owner.fields.get(key)
        if not isinstance(items, list):
            return False
        kept = [i for i in items if not (isinstance(i, Atom) and i.value == ref)]
        if len(kept) == len(items):
            return False
        items[:] = kept
        self.touch(owner.id)
        return True

    def add_setting_value(self, configuration: PbxObject, name: str, value: str,
                          inherited: str = "$(inherited)") -> bool:
        """Add *value* to the list-valued build setting *name*."""
        settings = configuration.fields.get("buildSettings")
        if not isinstance(settings, PbxDict):
            return False
        current = settings.get(name)
        if current is None:
            settings.insert_sorted(name, [Atom.of(inherited), Atom.of(value)])
        elif isinstance(current, Atom):
            if current.value == value:
                return False
            settings[name] = [current, Atom.of(value)]
        elif isinstance(current, list):
            if any(isinstance(v, Atom) and v.value == value for v in current):
                return False
            current.append(Atom.of(value))
        else:
            return False
        self.touch(configuration.id)
        return True

    def remove_setting_value(self, configuration: PbxObject, name: str, value: str) -> bool:
        settings = configuration.fields.get("buildSettings")
        if not isinstance(settings, PbxDict):
            return False
        current = settings.get(name)
        if isinstance(current, Atom) and current.value == value:
            del settings[name]
        elif isinstance(current, list):
            kept = [v for v in current if not (isinstance(v, Atom) and v.value == value)]
            if len(kept) == len(current):
                return False
            current[:] = kept
        else:
            return False
        self.touch(configuration.id)
        return True

    # -- output -------------------------------------------------------------

    @property
    def modified(self) -> bool:
        return bool(self._added or self._removed or self._dirty)

    def serialize(self) -> str:
        if not self.modified:
            return self._text

        text = self._text
        edits: list[tuple[int, int, int, str]] = []
        seq = iter(range(1 << 30))

        added: dict[str, list[PbxObject]] = defaultdict(list)
        for oid in self._added:
            if oid in self.objects:
                added[self.objects[oid].isa].append(self.objects[oid])

        dropped: set[str] = set()
        for isa, section in self._sections.items():
            survivors = [m for m in section.members if m not in self._removed]
            if section.members and not survivors and isa not in added:
                dropped.add(isa)
                start, end = section.begin_start, section.end_end
                if text.startswith("\n", end):
                    end += 1
                elif text[start - 2 : start] == "\n\n":
                    start -= 1
                edits.append((start, end, next(seq), ""))

        swallowed = {m for isa in dropped for m in self._sections[isa].members}
        for oid in self._removed:
            span = self._spans.get(oid)
            if span is None or oid in swallowed:
                continue
            edits.append((span.start, span.end, next(seq), ""))

        for oid in self._dirty:
            span = self._spans.get(oid)
            if span is None or oid in self._removed or oid not in self.objects:
                continue
            rendered = _render_object(self.objects[oid], span.indent, span.inline, span.whole_line)
            edits.append((span.start, span.end, next(seq), rendered))

        for isa in sorted(added):
            new_objects = sorted(added[isa], key=lambda o: o.id)
            inline = isa in _INLINE_ISAS
            section = self._sections.get(isa)
            if section is not None and isa not in dropped:
                for obj in new_objects:
                    pos = next(
                        (self._spans[m].start for m in section.members if m > obj.id),
                        section.end_start,
                    )
                    edits.append((pos, pos, next(seq), _render_object(obj, "\t\t", inline, True)))
                continue

            body = "".join(_render_object(o, "\t\t", inline, True) for o in new_objects)
            later = sorted(
                (s for s in self._sections.values() if s.isa > isa and s.isa not in dropped),
                key=lambda s: s.begin_start,
            )
            if later:
                pos = later[0].begin_start
                block = f"/* Begin {isa} section */\n{body}/* End {isa} section */\n\n"
            else:
                pos = text.rfind("\n", 0, self._objects_close) + 1
                block = f"\n/* Begin {isa} section */\n{body}/* End {isa} section */\n"
            edits.append((pos, pos, next(seq), block))

        edits.sort(key=lambda e: (e[0], e[1], e[2]))
        out: list[str] = []
        cursor = 0
        for start, end, _, replacement in edits:
            if start < cursor:
                raise ValueError(f"overlapping edits at offset {start} in {self.source}")
            out.append(text[cursor:start])
            out.append(replacement)
            cursor = end
        out.append(text[cursor:])
        return "".join(out)

    def write(self, path: Path) -> bool:
        """Write the graph to *path* if anything changed; the graph is then reloaded."""
        if not self.modified:
            return False
        text = self.serialize()
        path.write_bytes(text.encode("utf-8"))
        self._load(text)
        return True
