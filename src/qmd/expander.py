"""Query expansion into typed search variants."""

import logging
import re
from typing import Optional

from qmd.models import QueryVariant
from qmd.protocols import GenerationProvider

logger = logging.getLogger(__name__)

EXPANSION_MAX_TOKENS = 300
EXPANSION_TEMPERATURE = 0.7

VARIANT_LINE = re.compile(r"^\s*(?:[-*]\s*|\d+[.)]\s*)?(lex|vec|hyde)\s*:\s*(.+?)\s*$", re.IGNORECASE)

PROMPT_TEMPLATE = """You are a search query optimizer. Generate alternative queries for semantic search.

Original Query: {query}
{context}
Generate exactly {count} outputs:
1. A rephrased version of the query using different words
2. A more specific version with additional relevant terms
3. A hypothetical document snippet (1-2 sentences) that would answer this query{lexical_item}

Format your response EXACTLY as:
vec: [rephrased query]
vec: [specific query]
hyde: [hypothetical document passage]{lexical_line}

Do not include any other text."""


def build_prompt(query: str, context: Optional[str] = None, include_lexical: bool = False) -> str:
    return PROMPT_TEMPLATE.format(
        query=query,
        context=f"\nContext: {context}\n" if context else "",
        count=4 if include_lexical else 3,
        lexical_item="\n4. A short keyword query for full-text search" if include_lexical else "",
        lexical_line="\nlex: [keywords]" if include_lexical else "",
    )


def parse_variants(output: str, query: str, include_lexical: bool = False) -> list[QueryVariant]:
    """Pull ``type: text`` lines out of free-form model output.

    Lines that don't match, repeat an earlier variant, or just echo the
    query are dropped.
    """
    variants: list[QueryVariant] = []
    seen = {("vec", query.strip().lower())}
    for line in output.splitlines():
        match = VARIANT_LINE.match(line)
        if not match:
            continue
        kind = match.group(1).lower()
        text = match.group(2).strip().strip("[]").strip()
        if not text or (kind == "lex" and not include_lexical):
            continue
        key = (kind, text.lower())
        if key in seen or text == query:
            continue
        seen.add(key)
        variants.append(QueryVariant(type=kind, text=text))
    return variants


class QueryExpander:
    """Expands a query with a generation model.

    The original query is always the first variant, whatever the model
    does.
    """

    def __init__(self, generator: Optional[GenerationProvider] = None):
        self.generator = generator

    def expand(
        self,
        query: str,
        context: Optional[str] = None,
        include_lexical: bool = False,
    ) -> list[QueryVariant]:
        original = QueryVariant(type="vec", text=query)
        if self.generator is None:
            return [original]

        try:
            output = self.generator.generate(
                build_prompt(query, context, include_lexical),
                max_tokens=EXPANSION_MAX_TOKENS,
                temperature=EXPANSION_TEMPERATURE,
            )
        except Exception as e:
            logger.warning("Query expansion failed, using original query only: %s", e)
            return [original]

        return [original, *parse_variants(output or "", query, include_lexical)]
