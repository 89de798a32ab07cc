"""Context assembly for a new turn.

Given the parent of the turn being created, builds the text handed to the
model: resolved references, one-line summaries of older turns, the merged
citation list, and the most recent turns verbatim. Rendering is a pure
function of the ancestor chain and the resolved reference blocks; the
ContextAssembler does the resolving.
"""

import logging

from pydantic import BaseModel, Field

from canopy.errors import NodeNotFoundError, ParentNotFoundError
from canopy.forest.resolver import TreeResolver
from canopy.forest.store import ForestStore
from canopy.generation.tokens import ApproximateTokenCounter, TokenCounter
from canopy.models import Citation, Reference

logger = logging.getLogger(__name__)

RECENT_TURN_WINDOW = 10
FALLBACK_PROMPT_CHARS = 50


class ReferenceBlock(BaseModel):
    """One rendered transcript pulled in by a reference."""

    label: str
    turns: list[dict]


class AssembledContext(BaseModel):
    text: str = ""
    citations: list[Citation] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    skipped_references: list[Reference] = Field(default_factory=list)
    token_estimate: int = 0


def fallback_line(user_prompt: str) -> str:
    """Stand-in for a missing summary: the start of the prompt."""
    text = " ".join(user_prompt.split())
    if len(text) <= FALLBACK_PROMPT_CHARS:
        return text
    return text[:FALLBACK_PROMPT_CHARS] + "..."


def merge_citations(chain: list[dict], new_citations: list[Citation]) -> list[Citation]:
    """Chain citations then the new turn's, deduplicated by text.

    A later citation with the same text replaces the earlier one but keeps
    the earlier position.
    """
    merged: dict[str, Citation] = {}
    for node in chain:
        for raw in node.get("citations") or []:
            citation = Citation.model_validate(raw)
            merged[citation.text] = citation
    for citation in new_citations:
        merged[citation.text] = citation
    return list(merged.values())


def render_transcript(turns: list[dict]) -> str:
    lines: list[str] = []
    for turn in turns:
        lines.append(f"User: {turn['user_prompt']}")
        if turn.get("ai_response") is not None:
            lines.append(f"AI: {turn['ai_response']}")
    return "\n".join(lines)


def render_context(
    chain: list[dict],
    citations: list[Citation],
    reference_blocks: list[ReferenceBlock],
    *,
    recent_turns: int = RECENT_TURN_WINDOW,
) -> str:
    """Render the context sections in order, omitting empty ones.

    Order: references, older summaries, citations, recent transcript.
    """
    older = chain[:-recent_turns] if len(chain) > recent_turns else []
    recent = chain[-recent_turns:]

    sections: list[str] = []
    if reference_blocks:
        blocks = [
            f"[{block.label}]\n{render_transcript(block.turns)}" for block in reference_blocks
        ]
        sections.append("Referenced Conversations:\n" + "\n\n".join(blocks))
    if older:
        summary_lines = [
            f"- {node['summary'] or fallback_line(node['user_prompt'])}" for node in older
        ]
        sections.append("Earlier Conversation Summary:\n" + "\n".join(summary_lines))
    if citations:
        cited = [f'- "{c.text}" ({c.source})' for c in citations]
        sections.append("Citations:\n" + "\n".join(cited))
    if recent:
        sections.append("Recent Conversation:\n" + render_transcript(recent))
    return "\n\n".join(sections)


def build_prompt(context: str, user_prompt: str) -> str:
    """The text sent to the model: context framing plus the new message."""
    if not context:
        return user_prompt
    return f"Conversation Context:\n{context}\n\nUser Message:\n{user_prompt}"


class ContextAssembler:
    """Resolves the chain and references for a new turn and renders its context."""

    def __init__(
        self,
        forest: ForestStore,
        resolver: TreeResolver,
        *,
        recent_turns: int = RECENT_TURN_WINDOW,
        token_counter: TokenCounter | None = None,
    ) -> None:
        self._forest = forest
        self._resolver = resolver
        self._recent_turns = recent_turns
        self._token_counter = token_counter or ApproximateTokenCounter()

    async def assemble(
        self,
        owner_id: str,
        parent_id: str | None,
        *,
        citations: list[Citation] | None = None,
        references: list[Reference] | None = None,
    ) -> AssembledContext:
        """Build the context a new child of ``parent_id`` receives.

        Raises:
            ParentNotFoundError: If ``parent_id`` is set but missing or not owned.
            IntegrityFaultError: If an ancestor chain is corrupt.
        """
        citations = list(citations or [])
        references = list(references or [])

        chain: list[dict] = []
        if parent_id is not None:
            try:
                chain = await self._resolver.ancestors_of(owner_id, parent_id)
            except NodeNotFoundError:
                raise ParentNotFoundError(parent_id) from None

        blocks, skipped = await self._resolve_references(owner_id, references)
        merged = merge_citations(chain, citations)
        text = render_context(chain, merged, blocks, recent_turns=self._recent_turns)
        return AssembledContext(
            text=text,
            citations=merged,
            references=references,
            skipped_references=skipped,
            token_estimate=self._token_counter.count(text),
        )

    async def _resolve_references(
        self, owner_id: str, references: list[Reference]
    ) -> tuple[list[ReferenceBlock], list[Reference]]:
        blocks: list[ReferenceBlock] = []
        skipped: list[Reference] = []
        for ref in references:
            if ref.type == "chat":
                try:
                    chain = await self._resolver.ancestors_of(owner_id, ref.id)
                except NodeNotFoundError:
                    logger.warning("Skipping missing chat reference %s", ref.id)
                    skipped.append(ref)
                    continue
                blocks.append(ReferenceBlock(label=f"Conversation {ref.id}", turns=chain))
            else:
                folder_ids = await self._forest.folder_subtree_ids(owner_id, ref.id)
                if not folder_ids:
                    logger.warning("Skipping missing folder reference %s", ref.id)
                    skipped.append(ref)
                    continue
                for root in await self._forest.roots_in_folders(owner_id, folder_ids):
                    turns = await self._newest_branch(owner_id, root["node_id"])
                    blocks.append(
                        ReferenceBlock(
                            label=f"Folder {ref.id} / Conversation {root['node_id']}",
                            turns=turns,
                        )
                    )
        return blocks, skipped

    async def _newest_branch(self, owner_id: str, root_id: str) -> list[dict]:
        """Root to the most recently created leaf: one linear dialogue per tree."""
        rows = await self._forest.descendant_rows(
            owner_id, root_id, include_children_count=True
        )
        leaf = rows[0]
        for row in rows:
            if row["children_count"] == 0 and row["created_at"] >= leaf["created_at"]:
                leaf = row
        return await self._resolver.ancestors_of(owner_id, leaf["node_id"])
