"""Restricted message formatting: bold spans and bullet lists, always escaped.

Message text comes from the model and from grounding attributions, so it is
never treated as markup. It is parsed into typed segments first and only the
tags emitted here reach the page.
"""

import html
import re
from dataclasses import dataclass, field
from typing import List, Union

BOLD_PATTERN = re.compile(r"\*\*(.+?)\*\*")
BULLET_PREFIXES = ("- ", "* ")


@dataclass
class TextSegment:
    text: str


@dataclass
class BoldSegment:
    text: str


Segment = Union[TextSegment, BoldSegment]
Line = List[Segment]


@dataclass
class Paragraph:
    lines: List[Line] = field(default_factory=list)


@dataclass
class BulletList:
    items: List[Line] = field(default_factory=list)


Block = Union[Paragraph, BulletList]


def parse_inline(text: str) -> Line:
    """Split a line into plain and bold segments."""
    segments: Line = []
    position = 0
    for match in BOLD_PATTERN.finditer(text):
        if match.start() > position:
            segments.append(TextSegment(text[position:match.start()]))
        segments.append(BoldSegment(match.group(1)))
        position = match.end()
    if position < len(text):
        segments.append(TextSegment(text[position:]))
    return segments


def parse(text: str) -> List[Block]:
    """Group lines into paragraphs and bullet lists."""
    blocks: List[Block] = []
    current = None

    for raw_line in text.splitlines():
        line = raw_line.rstrip()
        if not line.strip():
            current = None
            continue

        if line.startswith(BULLET_PREFIXES):
            if not isinstance(current, BulletList):
                current = BulletList()
                blocks.append(current)
            current.items.append(parse_inline(line[2:]))
        else:
            if not isinstance(current, Paragraph):
                current = Paragraph()
                blocks.append(current)
            current.lines.append(parse_inline(line))

    return blocks


def render_segment(segment: Segment) -> str:
    escaped = html.escape(segment.text, quote=True)
    if isinstance(segment, BoldSegment):
        return f"<strong>{escaped}</strong>"
    return escaped


def render_line(line: Line) -> str:
    return "".join(render_segment(segment) for segment in line)


def render_blocks(blocks: List[Block]) -> str:
    parts = []
    for block in blocks:
        if isinstance(block, BulletList):
            items = "".join(f"<li>{render_line(item)}</li>" for item in block.items)
            parts.append(f"<ul>{items}</ul>")
        else:
            parts.append("<p>" + "<br>".join(render_line(line) for line in block.lines) + "</p>")
    return "".join(parts)


def format_message(text: str) -> str:
    """HTML fragment for a message's text."""
    return render_blocks(parse(text))
