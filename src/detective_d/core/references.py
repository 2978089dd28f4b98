from __future__ import annotations

import logging
from collections.abc import Iterable

from detective_d.models import ParserHint, ReferenceSnippet

logger = logging.getLogger(__name__)

DEFAULT_SNIPPET_LIMIT = 3
CONTEXT_CONTENT_CHARS = 500


def _snippet(file_type: str, category: str, title: str, content: str, keywords: Iterable[str]) -> ReferenceSnippet:
    slug = "".join(ch if ch.isalnum() else "_" for ch in title.upper())
    return ReferenceSnippet(
        id=f"{file_type.upper()}_{category.upper()}_{slug}",
        file_type=file_type,  # type: ignore[arg-type]
        category=category,
        title=title,
        content=content,
        keywords=tuple(keyword.lower() for keyword in (*keywords, file_type)),
    )


_BUILTIN_SNIPPETS: tuple[ReferenceSnippet, ...] = (
    # JSON
    _snippet(
        "json",
        "rules",
        "Grammar Rules",
        "A JSON text is one value: object, array, string, number, true, false or null. Object keys must be "
        "double-quoted strings. Members are separated by commas and keys from values by a colon. Single "
        "quotes, comments, NaN and Infinity are not valid JSON.",
        ["grammar", "rfc", "syntax", "rule", "specification"],
    ),
    _snippet(
        "json",
        "rules",
        "Trailing Comma Rules",
        "A comma must be followed by another member or element. A trailing comma before } or ] is a syntax "
        "error, for example {\"a\": 1,} or [1, 2,].",
        ["trailing", "comma", "separator"],
    ),
    _snippet(
        "json",
        "patterns",
        "Common Mistakes",
        "Typical defects: missing comma between members, unquoted or single-quoted keys, unescaped control "
        "characters or quotes inside strings, unbalanced braces or brackets, duplicate keys.",
        ["mistake", "error", "common", "quote", "brace", "bracket", "duplicate"],
    ),
    _snippet(
        "json",
        "repairs",
        "Repair Strategies",
        "Remove the trailing comma, insert the missing comma, replace single quotes with double quotes, add "
        "the closing brace or bracket at the end of the enclosing structure, escape embedded quotes.",
        ["repair", "fix", "solution", "strategy"],
    ),
    # CSV
    _snippet(
        "csv",
        "rules",
        "Grammar Rules",
        "Records are separated by line breaks; fields by commas. Every record should have the same number of "
        "fields as the header. Fields containing commas, quotes or line breaks must be enclosed in double "
        "quotes, and an embedded double quote is written as two double quotes.",
        ["grammar", "rfc", "syntax", "rule", "column", "field"],
    ),
    _snippet(
        "csv",
        "rules",
        "Quoting Rules",
        "A quoted field starts and ends with a double quote. Text after the closing quote and before the "
        "next comma is invalid. An unterminated quote swallows the rest of the file.",
        ["quote", "quoting", "string", "escape"],
    ),
    _snippet(
        "csv",
        "patterns",
        "Common Mistakes",
        "Typical defects: rows with too many or too few columns, unescaped quotes, stray delimiters, mixed "
        "delimiters, a header row missing or duplicated, inconsistent line endings.",
        ["mistake", "error", "common", "columns", "row", "expected"],
    ),
    _snippet(
        "csv",
        "repairs",
        "Repair Strategies",
        "Quote fields that contain commas, add empty fields to short rows, merge or remove extra delimiters, "
        "double embedded quotes.",
        ["repair", "fix", "solution", "strategy"],
    ),
    # XML
    _snippet(
        "xml",
        "rules",
        "Grammar Rules",
        "A well-formed document has exactly one root element. Every start tag needs a matching end tag in "
        "the right order, or must be self-closing. Attribute values must be quoted, and & and < must be "
        "escaped in text.",
        ["grammar", "syntax", "rule", "tag", "well-formed", "root"],
    ),
    _snippet(
        "xml",
        "patterns",
        "Common Mistakes",
        "Typical defects: mismatched or unclosed tags, unescaped ampersands, unquoted attributes, duplicate "
        "attributes, multiple root elements, text before the XML declaration.",
        ["mistake", "error", "mismatched", "tag", "token", "ampersand"],
    ),
    _snippet(
        "xml",
        "repairs",
        "Repair Strategies",
        "Close the open element before its parent closes, replace & with &amp;, quote attribute values, wrap "
        "multiple roots in a single element.",
        ["repair", "fix", "solution", "strategy"],
    ),
    _snippet(
        "xml",
        "edge_cases",
        "Edge Cases",
        "CDATA sections may contain < and & literally. Processing instructions and comments may appear "
        "outside the root element. Namespace prefixes must be declared.",
        ["edge", "case", "cdata", "namespace"],
    ),
    # YAML
    _snippet(
        "yaml",
        "rules",
        "Grammar Rules",
        "Structure comes from indentation with spaces; tabs are not allowed for indentation. Mappings use "
        "'key: value' with a space after the colon; sequences use '- item'. Siblings must share the same "
        "indentation.",
        ["grammar", "syntax", "rule", "indentation", "mapping"],
    ),
    _snippet(
        "yaml",
        "rules",
        "Quoting Rules",
        "Values containing ': ', ' #', leading special characters or looking like booleans should be quoted. "
        "Single-quoted strings escape a quote by doubling it; double-quoted strings use backslash escapes.",
        ["quote", "quoting", "string", "escape", "scalar"],
    ),
    _snippet(
        "yaml",
        "patterns",
        "Common Mistakes",
        "Typical defects: inconsistent indentation, tabs, missing space after the colon, mixing sequence and "
        "mapping at one level, duplicate keys, unclosed quotes or flow collections.",
        ["mistake", "error", "common", "indentation", "mapping", "expected"],
    ),
    _snippet(
        "yaml",
        "repairs",
        "Repair Strategies",
        "Re-indent the block with spaces, add a space after the colon, quote the ambiguous scalar, close the "
        "flow collection.",
        ["repair", "fix", "solution", "strategy"],
    ),
)


class ReferenceLibrary:
    """Keyword-scored reference snippets used to ground the model prompt."""

    def __init__(self, snippets: Iterable[ReferenceSnippet] = _BUILTIN_SNIPPETS) -> None:
        self._snippets = tuple(snippets)

    @property
    def loaded(self) -> bool:
        return bool(self._snippets)

    def retrieve(self, file_type: str, context: str = "", limit: int = DEFAULT_SNIPPET_LIMIT) -> list[ReferenceSnippet]:
        candidates = [snippet for snippet in self._snippets if snippet.file_type == file_type.lower()]
        if not candidates:
            logger.debug("No reference snippets for %s", file_type)
            return []

        context = context.lower()
        wants_repairs = "error" in context or "invalid" in context

        def score(snippet: ReferenceSnippet) -> int:
            total = sum(2 for keyword in snippet.keywords if keyword in context)
            if wants_repairs:
                if snippet.category == "repairs":
                    total += 3
                elif snippet.category == "patterns":
                    total += 2
            if snippet.category == "rules":
                total += 1
            return total

        # sorted() is stable, so equal scores keep library order
        return sorted(candidates, key=score, reverse=True)[:limit]

    def status(self) -> dict[str, object]:
        by_type: dict[str, int] = {}
        for snippet in self._snippets:
            by_type[snippet.file_type] = by_type.get(snippet.file_type, 0) + 1
        return {"loaded": self.loaded, "total_snippets": len(self._snippets), "by_file_type": by_type}


def build_retrieval_context(hints: list[ParserHint], content: str) -> str:
    messages = " ".join(hint.message for hint in hints)
    return f"{messages} {content[:CONTEXT_CONTENT_CHARS]}"


def format_snippets_for_prompt(snippets: list[ReferenceSnippet]) -> str:
    if not snippets:
        return ""
    blocks = [
        f"[{index}] {snippet.title} ({snippet.category})\n{snippet.content}" for index, snippet in enumerate(snippets, 1)
    ]
    return "REFERENCE RULES:\n\n" + "\n\n".join(blocks)
