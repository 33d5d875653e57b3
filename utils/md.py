import logging
import re
from pathlib import Path

import markdown
import mammoth
from bs4 import BeautifulSoup
from bs4.element import Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

logger = logging.getLogger(__name__)

# md_to_html / to_structured (html -> md), docx adapters, fallback

MD_EXTENSIONS = ["extra", "sane_lists"]

BLOCK_TAGS = {
    "p", "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "blockquote", "pre", "hr",
    "div", "section", "article", "table", "dl", "figure",
}
_SKIP = (Comment, Declaration, Doctype, ProcessingInstruction)

# classes that belong to the stored markup; anything else is render decoration
KEEP_CLASSES = {"comment", "pending", "character-mention", "event-marker"}
_BASE_CLASS = {"comment": "comment", "mention": "character-mention", "event": "event-marker"}


def md_to_html(md: str, *, css: str | None = None, include_scaffold: bool = True) -> str:
    """
    Convert Markdown to HTML.
    If css is provided, it should be raw CSS (without <style> tags). We'll wrap it here.
    """
    html_body = markdown.markdown(md or "", extensions=MD_EXTENSIONS, output_format="html")
    head_css = f"<style>{css}</style>" if css else ""
    if include_scaffold:
        return f"<!doctype html><meta charset='utf-8'><body>{head_css}{html_body}</body>"
    # fragment (editor surface, metrics cache)
    return f"{head_css}{html_body}" if css else html_body


def to_rich(md: str) -> str:
    return md_to_html(md, include_scaffold=False)


# ---- html -> markdown

def _reserved_kind(tag: Tag) -> str | None:
    if tag.name == "u" and tag.has_attr("data-comment-id"):
        return "comment"
    if tag.name == "span":
        if tag.has_attr("data-character-id"):
            return "mention"
        if tag.has_attr("data-event-id"):
            return "event"
    return None


def _attr_value(v) -> str:
    if isinstance(v, (list, tuple)):
        v = " ".join(v)
    return (v or "").replace("&", "&amp;").replace('"', "&quot;").replace("<", "&lt;").replace(">", "&gt;")


def _reserved_open(tag: Tag, kind: str) -> str:
    parts = []
    has_class = False
    for k, v in tag.attrs.items():
        if k == "class":
            classes = [c for c in (v if isinstance(v, list) else str(v).split()) if c in KEEP_CLASSES]
            if _BASE_CLASS[kind] not in classes:
                classes.insert(0, _BASE_CLASS[kind])
            parts.append(f'class="{_attr_value(classes)}"')
            has_class = True
        elif k.startswith("data-"):
            parts.append(f'{k}="{_attr_value(v)}"')
    if not has_class:
        parts.append(f'class="{_BASE_CLASS[kind]}"')
    return f"<{tag.name} {' '.join(parts)}>"


def _generic_open(tag: Tag) -> str:
    attrs = "".join(f' {k}="{_attr_value(v)}"' for k, v in tag.attrs.items()
                    if k not in ("style", "contenteditable"))
    return f"<{tag.name}{attrs}>"


def _escape_text(s: str) -> str:
    s = s.replace("\\", "\\\\")
    s = s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace("\xa0", "&nbsp;")
    for ch in "*_`[]":
        s = s.replace(ch, "\\" + ch)
    return s


def _wrap(marker: str, inner: str) -> str:
    # markers must hug the text: "**bold** " not "**bold **"
    core = inner.strip()
    if not core:
        return inner
    lead = inner[:len(inner) - len(inner.lstrip())]
    trail = inner[len(inner.rstrip()):]
    return f"{lead}{marker}{core}{marker}{trail}"


def _code_span(text: str) -> str:
    if "`" not in text:
        return f"`{text}`"
    return f"`` {text} ``"


def _link_target(url: str, title: str | None) -> str:
    url = url or ""
    if " " in url or "(" in url or ")" in url:
        url = f"<{url}>"
    return f'{url} "{title}"' if title else url


def _inline(nodes) -> str:
    parts = []
    for n in nodes:
        if isinstance(n, _SKIP):
            continue
        if isinstance(n, NavigableString):
            parts.append(_escape_text(str(n)))
            continue
        name = n.name
        if name in ("strong", "b"):
            parts.append(_wrap("**", _inline(n.contents)))
        elif name in ("em", "i"):
            parts.append(_wrap("*", _inline(n.contents)))
        elif name == "code":
            parts.append(_code_span(n.get_text()))
        elif name == "a":
            parts.append(f"[{_inline(n.contents)}]({_link_target(n.get('href'), n.get('title'))})")
        elif name == "img":
            parts.append(f"![{n.get('alt', '')}]({_link_target(n.get('src'), n.get('title'))})")
        elif name == "br":
            parts.append("  \n")
        elif name in ("u", "span"):
            kind = _reserved_kind(n)
            inner = _inline(n.contents)
            if kind:
                parts.append(f"{_reserved_open(n, kind)}{inner}</{name}>")
            elif name == "u":
                parts.append(f"<u>{inner}</u>")
            else:
                # colour/editability wrappers injected at render time
                parts.append(inner)
        elif name in BLOCK_TAGS:
            parts.append("\n\n".join(_blocks([n])))
        elif n.can_be_empty_element and not n.contents:
            parts.append(_generic_open(n))
        else:
            parts.append(f"{_generic_open(n)}{_inline(n.contents)}</{name}>")
    return "".join(parts)


_RULE_RE = re.compile(r"^( {0,3})(-{3,}\s*)$", re.M)
_BULLET_RE = re.compile(r"^( {0,3})([-+])(?=\s|$)", re.M)
_HASH_RE = re.compile(r"^( {0,3})#", re.M)
_ORDINAL_RE = re.compile(r"^( {0,3}\d+)\.(?=\s|$)", re.M)


def _paragraph(md: str) -> str:
    """Escape line starts that markdown would read as block syntax."""
    md = _RULE_RE.sub(r"\1\\\2", md)
    md = _BULLET_RE.sub(r"\1\\\2", md)
    md = _HASH_RE.sub(r"\1\\#", md)
    return _ORDINAL_RE.sub(r"\1\\.", md)


def _indent(text: str, pad: str = "    ") -> str:
    return "\n".join((pad + line) if line.strip() else "" for line in text.split("\n"))


def _list(tag: Tag) -> str:
    ordered = tag.name == "ol"
    items = tag.find_all("li", recursive=False)
    loose = any(li.find("p", recursive=False) is not None for li in items)
    out = []
    for i, li in enumerate(items, 1):
        marker = f"{i}. " if ordered else "- "
        body = ("\n\n" if loose else "\n").join(_blocks(li.contents))
        first, _, rest = body.partition("\n")
        out.append(marker + first + ("\n" + _indent(rest) if rest else ""))
    return ("\n\n" if loose else "\n").join(out)


def _block(tag: Tag) -> list[str]:
    name = tag.name
    if name == "p":
        text = _inline(tag.contents).strip()
        return [_paragraph(text)] if text else []
    if name in ("h1", "h2", "h3", "h4", "h5", "h6"):
        text = " ".join(_inline(tag.contents).split("\n")).strip()
        return ["#" * int(name[1]) + " " + text]
    if name in ("ul", "ol"):
        return [_list(tag)]
    if name == "blockquote":
        inner = "\n\n".join(_blocks(tag.contents))
        return ["\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))]
    if name == "pre":
        code = tag.find("code")
        text = (code or tag).get_text()
        if text.endswith("\n"):
            text = text[:-1]
        lang = ""
        if code is not None:
            lang = next((c[len("language-"):] for c in code.get("class", []) if c.startswith("language-")), "")
        fence = "~~~~" if "```" in text else "```"
        return [f"{fence}{lang}\n{text}\n{fence}"]
    if name == "hr":
        return ["---"]
    if name in ("div", "section", "article"):
        return _blocks(tag.contents)
    return [str(tag)]


def _blocks(nodes) -> list[str]:
    out: list[str] = []
    run: list = []

    def _flush():
        if run:
            text = _inline(run).strip()
            run.clear()
            if text:
                out.append(_paragraph(text))

    for n in nodes:
        if isinstance(n, _SKIP):
            continue
        if isinstance(n, Tag) and n.name in BLOCK_TAGS:
            _flush()
            out.extend(b for b in _block(n) if b)
        else:
            run.append(n)
    _flush()
    return out


def to_structured(html: str) -> str:
    """
    Rich HTML (editor surface) back to markdown. Comment, mention and event
    tags are written back with their identifying attributes; render-time
    decoration (colour spans, state classes, contenteditable) is dropped.
    """
    if not (html or "").strip():
        return ""
    soup = BeautifulSoup(html, "html.parser")
    return "\n\n".join(_blocks(soup.contents))


# ---- import

def docx_to_markdown(path: str) -> str:
    # 1) Mammoth -> html -> markdown (keeps headings, lists, emphasis)
    try:
        with open(path, "rb") as f:
            result = mammoth.convert_to_html(f)
        for message in result.messages:
            logger.debug("mammoth: %s", message)
        return to_structured(result.value)
    except Exception:
        logger.warning("mammoth failed on %s, falling back to python-docx", path, exc_info=True)

    # 2) Fallback: paragraphs only, headings by style name
    try:
        from docx import Document
        d = Document(path)
        blocks = []
        for p in d.paragraphs:
            text = p.text.strip()
            if not text:
                continue
            style = (p.style.name if p.style is not None else "") or ""
            m = re.match(r"Heading (\d)", style)
            blocks.append(("#" * int(m.group(1)) + " " + text) if m else _paragraph(_escape_text(text)))
        return "\n\n".join(blocks)
    except Exception:
        logger.warning("python-docx fallback failed on %s", path, exc_info=True)
        return ""


def read_file_as_markdown(path: str) -> str:
    ext = Path(path).suffix.lower()
    if ext == ".docx":
        return docx_to_markdown(path)
    if ext in (".html", ".htm"):
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return to_structured(f.read())
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()
