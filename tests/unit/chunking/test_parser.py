"""
Tests for the markdown block parser.

Organization
------------
- TestMatchHeading: Markdown, Chapter and Section headings
- TestParseBlocks: Block kinds and boundaries
"""

import pytest

from hybridrag.chunking.parser import match_heading, parse_blocks


# ============================================================================
# Test Classes
# ============================================================================


class TestMatchHeading:
    """Tests for match_heading."""

    @pytest.mark.parametrize(
        "line, expected",
        [
            ("# Title", (1, "Title")),
            ("### Ward Budget", (3, "Ward Budget")),
            ("## Budget ##", (2, "Budget")),
            ("Chapter 3 Intro", (1, "Chapter 3 Intro")),
            ("CHAPTER IV The Return", (1, "CHAPTER IV The Return")),
            ("Section 2.1 Scope", (2, "Section 2.1 Scope")),
        ],
    )
    def test_headings(self, line, expected):
        assert match_heading(line) == expected

    @pytest.mark.parametrize(
        "line",
        [
            "#hashtag",
            "Plain sentence.",
            "Section 3 of the act applies to every ward.",
            "Section 4 " + "x" * 90,
        ],
    )
    def test_not_headings(self, line):
        assert match_heading(line) is None


class TestParseBlocks:
    """Tests for parse_blocks."""

    def test_mixed_document(self):
        text = (
            "Intro line\n"
            "continues here\n"
            "# Head\n"
            "- a\n"
            "- b\n"
            "\n"
            "| x | y |\n"
            "|---|---|\n"
            "| 1 | 2 |\n"
            "\n"
            "```py\n"
            "print(1)\n"
            "```\n"
        )

        blocks = parse_blocks(text)

        assert [b.kind for b in blocks] == ["paragraph", "heading", "list", "table", "code"]
        assert blocks[0].text == "Intro line\ncontinues here"
        assert blocks[1].level == 1 and blocks[1].title == "Head"
        assert blocks[3].rows == [["x", "y"], ["1", "2"]]
        assert blocks[4].text.endswith("```")

    def test_blank_input(self):
        assert parse_blocks("\n\n   \n") == []

    def test_unterminated_fence_runs_to_end(self):
        blocks = parse_blocks("```\ncode\n# not a heading")

        assert len(blocks) == 1
        assert blocks[0].kind == "code"
        assert "# not a heading" in blocks[0].text

    def test_list_continuation_lines(self):
        blocks = parse_blocks("- first\n  wrapped\n- second\nAfter")

        assert [b.kind for b in blocks] == ["list", "paragraph"]
        assert blocks[0].text == "- first\n  wrapped\n- second"

    def test_paragraph_ends_at_table(self):
        blocks = parse_blocks("Budget below\n| a | b |\n| 1 | 2 |")

        assert [b.kind for b in blocks] == ["paragraph", "table"]

    def test_every_line_covered(self):
        """Every non-blank line lands in exactly one block."""
        text = "# A\n\npara\n\n- x\n\n| p | q |\n\nend."

        lines = [line for b in parse_blocks(text) for line in b.text.split("\n")]

        assert lines == [line for line in text.split("\n") if line.strip()]
