"""Markdown block parser used by the hybrid chunker.

Recognizes headings (markdown and ``Chapter``/``Section`` style), fenced
code, pipe tables, lists and paragraphs. Every non-blank line of the input
belongs to exactly one block, in document order.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from hybridrag.chunking.models import Block
from hybridrag.chunking.tables import is_table_line, parse_table

# (pattern, level); the first capture group is the title
HEADER_PATTERNS: List[Tuple[re.Pattern, Optional[int]]] = [
    (re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$"), None),
    (re.compile(r"^((?:CHAPTER|Chapter)\s+(?:\d+|[IVXLC]+)\b.*)$"), 1),
    (re.compile(r"^((?:SECTION|Section)\s+\d+(?:\.\d+)?\b.*)$"), 2),
]
LIST_ITEM = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+\S")
FENCE = re.compile(r"^\s*(```|~~~)")
MAX_PLAIN_HEADING_LENGTH = 80


def match_heading(line: str) -> Optional[Tuple[int, str]]:
    """Return (level, title) if the line is a heading."""
    stripped = line.strip()
    for pattern, level in HEADER_PATTERNS:
        match = pattern.match(stripped)
        if not match:
            continue
        if level is None:
            return len(match.group(1)), match.group(2).strip()
        # Prose that merely starts with "Section 3" is not a heading
        if len(stripped) > MAX_PLAIN_HEADING_LENGTH or stripped.endswith("."):
            continue
        return level, match.group(1).strip()
    return None


def _starts_block(line: str) -> bool:
    return bool(
        FENCE.match(line)
        or match_heading(line)
        or is_table_line(line)
        or LIST_ITEM.match(line)
    )


def parse_blocks(text: str) -> List[Block]:
    """Split a document into structural blocks."""
    lines = text.split("\n")
    blocks: List[Block] = []
    i = 0

    while i < len(lines):
        line = lines[i]
        if not line.strip():
            i += 1
            continue

        fence = FENCE.match(line)
        if fence:
            i = _consume_code(lines, i, fence.group(1), blocks)
            continue

        heading = match_heading(line)
        if heading:
            level, title = heading
            blocks.append(Block(kind="heading", text=line, level=level, title=title))
            i += 1
            continue

        if is_table_line(line):
            i = _consume_table(lines, i, blocks)
            continue

        if LIST_ITEM.match(line):
            i = _consume_list(lines, i, blocks)
            continue

        i = _consume_paragraph(lines, i, blocks)

    return blocks


def _consume_code(lines: List[str], start: int, marker: str, blocks: List[Block]) -> int:
    end = start + 1
    while end < len(lines) and not lines[end].strip().startswith(marker):
        end += 1
    end = min(end + 1, len(lines))  # include closing fence when present
    blocks.append(Block(kind="code", text="\n".join(lines[start:end])))
    return end


def _consume_table(lines: List[str], start: int, blocks: List[Block]) -> int:
    end = start
    while end < len(lines) and lines[end].strip() and is_table_line(lines[end]):
        end += 1
    table_lines = lines[start:end]
    blocks.append(
        Block(kind="table", text="\n".join(table_lines), rows=parse_table(table_lines))
    )
    return end


def _consume_list(lines: List[str], start: int, blocks: List[Block]) -> int:
    end = start + 1
    while end < len(lines):
        line = lines[end]
        if not line.strip():
            break
        is_continuation = line[:1].isspace() and not FENCE.match(line)
        if LIST_ITEM.match(line) or (is_continuation and not is_table_line(line)):
            end += 1
            continue
        break
    blocks.append(Block(kind="list", text="\n".join(lines[start:end])))
    return end


def _consume_paragraph(lines: List[str], start: int, blocks: List[Block]) -> int:
    end = start + 1
    while end < len(lines) and lines[end].strip() and not _starts_block(lines[end]):
        end += 1
    blocks.append(Block(kind="paragraph", text="\n".join(lines[start:end])))
    return end
