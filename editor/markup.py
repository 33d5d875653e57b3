"""
Small parsed tree over chapter content for the three reserved inline tags.

Only <u> and <span> open/close pairs become Elements; every other tag is kept
as a RawTag token and text is kept verbatim, so serialize(parse(x)) == x for
any input. Unbalanced u/span tokens degrade to RawTag instead of failing.

Reserved shapes:
  comment  <u data-comment-id="ID" class="comment[ pending]">...</u>
  mention  <span data-character-id="ID" data-character-name="NAME" class="character-mention">...</span>
  event    <span data-event-id="ID"[ data-event-pending="true"] class="event-marker">...</span>
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Union

from codex.exceptions import AnnotationError

COMMENT = "comment"
MENTION = "mention"
EVENT = "event"
KINDS = (COMMENT, MENTION, EVENT)

_ID_ATTR = {COMMENT: "data-comment-id", MENTION: "data-character-id", EVENT: "data-event-id"}

TAG_RE = re.compile(
    r"<(/?)([a-zA-Z][a-zA-Z0-9-]*)"
    r"((?:\s+[^\s=>/\"']+(?:\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s>\"']+))?)*)"
    r"\s*(/?)>"
)
ATTR_RE = re.compile(r"""([^\s=>/"']+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>"']+)))?""")

CONTAINER_TAGS = ("u", "span")


@dataclass
class Text:
    value: str


@dataclass
class RawTag:
    source: str


@dataclass(eq=False)
class Element:
    name: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list["Node"] = field(default_factory=list)
    source: str = ""
    close_source: str = ""
    dirty: bool = False

    @property
    def kind(self) -> Optional[str]:
        if self.name == "u" and "data-comment-id" in self.attrs:
            return COMMENT
        if self.name == "span":
            if "data-character-id" in self.attrs:
                return MENTION
            if "data-event-id" in self.attrs:
                return EVENT
        return None

    @property
    def ref_id(self) -> Optional[str]:
        kind = self.kind
        return self.attrs.get(_ID_ATTR[kind]) if kind else None

    @property
    def classes(self) -> list[str]:
        return (self.attrs.get("class") or "").split()

    @property
    def pending(self) -> bool:
        if self.kind == COMMENT:
            return "pending" in self.classes
        if self.kind == EVENT:
            return self.attrs.get("data-event-pending") == "true"
        return False

    def set_attr(self, name: str, value: Optional[str]) -> None:
        if value is None:
            if name in self.attrs:
                del self.attrs[name]
                self.dirty = True
            return
        if self.attrs.get(name) != value:
            self.attrs[name] = value
            self.dirty = True

    def set_classes(self, classes: Iterable[str]) -> None:
        self.set_attr("class", " ".join(dict.fromkeys(c for c in classes if c)) or None)

    def open_tag(self) -> str:
        if self.source and not self.dirty:
            return self.source
        return "<" + self.name + "".join(
            f' {k}="{html.escape(v, quote=True)}"' for k, v in self.attrs.items()) + ">"

    def close_tag(self) -> str:
        return self.close_source or f"</{self.name}>"


Node = Union[Text, RawTag, Element]


def parse_attrs(raw: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for m in ATTR_RE.finditer(raw or ""):
        value = next((g for g in m.group(2, 3, 4) if g is not None), "")
        attrs[m.group(1).lower()] = html.unescape(value)
    return attrs


# ---- Parse / serialize

def _flatten_unclosed(el: Element, parent: Element) -> None:
    # an unclosed element is always the last child of the element below it on the stack
    parent.children[-1:] = [RawTag(el.source), *el.children]


def parse(content: str) -> list[Node]:
    root = Element("#root")
    stack = [root]
    pos = 0
    content = content or ""
    for m in TAG_RE.finditer(content):
        if m.start() > pos:
            stack[-1].children.append(Text(content[pos:m.start()]))
        pos = m.end()
        closing, name, raw_attrs, self_closing = m.group(1), m.group(2).lower(), m.group(3), m.group(4)

        if name not in CONTAINER_TAGS or self_closing:
            stack[-1].children.append(RawTag(m.group(0)))
            continue

        if not closing:
            el = Element(name, parse_attrs(raw_attrs), source=m.group(0))
            stack[-1].children.append(el)
            stack.append(el)
            continue

        match_at = next((i for i in range(len(stack) - 1, 0, -1) if stack[i].name == name), None)
        if match_at is None:
            stack[-1].children.append(RawTag(m.group(0)))
            continue
        while len(stack) - 1 > match_at:
            el = stack.pop()
            _flatten_unclosed(el, stack[-1])
        stack.pop().close_source = m.group(0)

    if pos < len(content):
        stack[-1].children.append(Text(content[pos:]))
    while len(stack) > 1:
        el = stack.pop()
        _flatten_unclosed(el, stack[-1])
    return root.children


def serialize(nodes: Iterable[Node]) -> str:
    out = []
    for n in nodes:
        if isinstance(n, Text):
            out.append(n.value)
        elif isinstance(n, RawTag):
            out.append(n.source)
        else:
            out.append(n.open_tag())
            out.append(serialize(n.children))
            out.append(n.close_tag())
    return "".join(out)


# ---- Queries

def iter_elements(nodes: Iterable[Node]) -> Iterator[Element]:
    for n in nodes:
        if isinstance(n, Element):
            yield n
            yield from iter_elements(n.children)


def find(nodes: Iterable[Node], kind: str, ref_id: Optional[str] = None) -> list[Element]:
    return [el for el in iter_elements(nodes)
            if el.kind == kind and (ref_id is None or el.ref_id == ref_id)]


def text_content(nodes: Iterable[Node]) -> str:
    """Text of the nodes with every tag token dropped."""
    out = []
    for n in nodes:
        if isinstance(n, Text):
            out.append(n.value)
        elif isinstance(n, Element):
            out.append(text_content(n.children))
    return "".join(out)


def element_spans(nodes: Iterable[Node]) -> list[tuple[Element, int, int]]:
    """(element, start, end) offsets into serialize(nodes), in document order."""
    acc: list[tuple[Element, int, int]] = []

    def _walk(items: Iterable[Node], pos: int) -> int:
        for n in items:
            if isinstance(n, Text):
                pos += len(n.value)
            elif isinstance(n, RawTag):
                pos += len(n.source)
            else:
                slot = len(acc)
                acc.append((n, pos, pos))
                end = _walk(n.children, pos + len(n.open_tag())) + len(n.close_tag())
                acc[slot] = (n, pos, end)
                pos = end
        return pos

    _walk(nodes, 0)
    return acc


def ref_ids(content: str, kind: str) -> list[str]:
    """De-duplicated ids of `kind` tags in document order."""
    return list(dict.fromkeys(el.ref_id for el in find(parse(content), kind) if el.ref_id))


# ---- Transformations

Matcher = Callable[[Element], bool]


def matching(kind: Optional[str] = None, ref_id: Optional[str] = None,
             kinds: Optional[Iterable[str]] = None) -> Matcher:
    wanted = set(kinds) if kinds is not None else ({kind} if kind else set(KINDS))

    def _match(el: Element) -> bool:
        return el.kind in wanted and (ref_id is None or el.ref_id == ref_id)
    return _match


def replace_elements(nodes: list[Node], match: Matcher,
                     make: Callable[[Element], list[Node]]) -> list[Node]:
    """Depth-first: children are transformed before their parent is matched."""
    out: list[Node] = []
    for n in nodes:
        if isinstance(n, Element):
            n.children = replace_elements(n.children, match, make)
            if match(n):
                out.extend(make(n))
                continue
        out.append(n)
    return out


def unwrap(nodes: list[Node], match: Matcher) -> list[Node]:
    return replace_elements(nodes, match, lambda el: el.children)


def unwrap_tags(content: str, kind: Optional[str] = None, ref_id: Optional[str] = None) -> str:
    return serialize(unwrap(parse(content), matching(kind, ref_id)))


def rewrite_tags(content: str, kind: str, ref_id: str,
                 edit: Callable[[Element], None]) -> tuple[str, int]:
    """Apply `edit` in place to every matching element; returns (content, count)."""
    nodes = parse(content)
    hits = find(nodes, kind, ref_id)
    for el in hits:
        edit(el)
    return serialize(nodes), len(hits)


# ---- Constructors

def _attr(name: str, value: str) -> str:
    return f'{name}="{html.escape(value, quote=True)}"'


def comment_open(comment_id: str, pending: bool = False) -> str:
    cls = "comment pending" if pending else "comment"
    return f"<u {_attr('data-comment-id', comment_id)} {_attr('class', cls)}>"


def comment_markup(comment_id: str, text: str, pending: bool = False) -> str:
    return f"{comment_open(comment_id, pending)}{text}</u>"


def mention_markup(character_id: str, name: str, text: Optional[str] = None) -> str:
    return (f"<span {_attr('data-character-id', character_id)} "
            f"{_attr('data-character-name', name)} class=\"character-mention\">"
            f"{html.escape(name, quote=False) if text is None else text}</span>")


def event_open(event_id: str, pending: bool = False) -> str:
    flag = ' data-event-pending="true"' if pending else ""
    return f"<span {_attr('data-event-id', event_id)}{flag} class=\"event-marker\">"


def event_markup(event_id: str, text: str, pending: bool = False) -> str:
    return f"{event_open(event_id, pending)}{text}</span>"


# ---- Selection checks

_OVERLAP_MARKERS = {
    COMMENT: ("data-comment-id=", "</u>"),
    EVENT: ("data-event-id=",),
    MENTION: ("data-character-id=",),
}


def has_overlap(selected: str, kind: str) -> bool:
    return any(marker in selected for marker in _OVERLAP_MARKERS[kind])


def enclosing_kinds(content: str, pos: int) -> list[str]:
    """Reserved kinds of the u/span elements still open at offset `pos`."""
    stack: list[tuple[str, Optional[str]]] = []
    for m in TAG_RE.finditer(content):
        if m.start() >= pos:
            break
        name = m.group(2).lower()
        if name not in CONTAINER_TAGS or m.group(4):
            continue
        if not m.group(1):
            stack.append((name, Element(name, parse_attrs(m.group(3))).kind))
        else:
            for i in range(len(stack) - 1, -1, -1):
                if stack[i][0] == name:
                    del stack[i:]
                    break
    return [k for _, k in stack if k]


def check_selection(content: str, start: int, end: int) -> str:
    """
    Validate a [start, end) range for wrapping and return the selected text.
    Rejects empty ranges, ranges cutting through a tag token and ranges whose
    u/span tags are not balanced inside the selection.
    """
    if not (0 <= start < end <= len(content)):
        raise AnnotationError("Select some text first.")
    for m in TAG_RE.finditer(content):
        if m.start() >= end:
            break
        if m.start() < start < m.end() or m.start() < end < m.end():
            raise AnnotationError("The selection cuts through existing markup.")

    selected = content[start:end]
    if not selected.strip():
        raise AnnotationError("Select some text first.")
    depth: list[str] = []
    for m in TAG_RE.finditer(selected):
        name = m.group(2).lower()
        if name not in CONTAINER_TAGS or m.group(4):
            continue
        if not m.group(1):
            depth.append(name)
        elif depth and depth[-1] == name:
            depth.pop()
        else:
            raise AnnotationError("The selection crosses the boundary of an existing annotation.")
    if depth:
        raise AnnotationError("The selection crosses the boundary of an existing annotation.")
    return selected
