"""
Document Processor

Turns a RawDocument into a searchable Document:
1. Chunk (semantic, with fixed-size fallback)
2. Embed the document and every chunk through the Embedding Gateway
3. Extract keywords per chunk (best-effort)
4. Enhance metadata via the Language Model Service (best-effort)

The processor never writes to the Vector Store; the caller decides when to
upsert the returned Document.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..common.embedding_gateway import EmbeddingGateway
from ..common.errors import ChunkingError, ServiceUnavailable
from ..common.llm_utils import coerce_float, coerce_str_list, parse_llm_json, parse_llm_list
from ..common.schemas import Chunk, ChunkMetadata, Document, DocumentMetadata, RawDocument
from .chunker import ChunkDraft, SemanticChunker

logger = logging.getLogger("ragent.ingest.processor")

# Characters of body text folded into the document-level embedding
DOC_EMBED_CONTENT_CHARS = 1000

# Characters of chunk text sent for keyword extraction
KEYWORD_TEXT_CHARS = 500

# Characters of body text sent for metadata enhancement
ENHANCE_CONTENT_CHARS = 1000

DIFFICULTY_LEVELS = ("beginner", "intermediate", "advanced", "expert")
SENTIMENTS = ("positive", "neutral", "negative")


KEYWORD_PROMPT = """Extract the 5-10 most important keywords from the text below.

Text: {text}

Rules:
1. Prefer core concepts and technical terms
2. Include domain-specific vocabulary
3. Skip common stop words

Respond with a JSON array of strings only, e.g. ["keyword1", "keyword2"]

JSON:"""


ENHANCE_PROMPT = """You are a content analysis expert. Analyze the document below and provide enriched metadata.

Title: {title}
Content: {content}

Respond with a JSON object only:
{{
    "difficulty": "beginner|intermediate|advanced|expert",
    "reading_time": estimated reading time in minutes (integer),
    "category": "a more precise category",
    "tags": ["tag1", "tag2"],
    "topics": ["topic1", "topic2"],
    "sentiment": "positive|neutral|negative",
    "complexity": 1-10,
    "actionable": true or false,
    "prerequisites": ["prerequisite1"],
    "related_concepts": ["concept1"]
}}

JSON:"""


@dataclass
class IngestFailure:
    """A document that could not be processed"""
    document_id: str
    error: str


@dataclass
class IngestReport:
    """Outcome of a batch ingestion"""
    documents: List[Document] = field(default_factory=list)
    failures: List[IngestFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.documents)

    @property
    def failed(self) -> int:
        return len(self.failures)


def merge_enhancement(metadata: DocumentMetadata, enhancement: Dict[str, Any]) -> DocumentMetadata:
    """
    Merge model-derived fields into caller metadata.

    Only recognized, well-typed values are taken; anything else is ignored.
    Recognized values replace the caller's, except tags which are unioned.
    """
    updates: Dict[str, Any] = {}

    difficulty = enhancement.get("difficulty")
    if isinstance(difficulty, str) and difficulty.lower() in DIFFICULTY_LEVELS:
        updates["difficulty"] = difficulty.lower()

    reading_time = enhancement.get("reading_time", enhancement.get("readingTime"))
    if isinstance(reading_time, (int, float)) and not isinstance(reading_time, bool) and reading_time > 0:
        updates["reading_time"] = int(round(reading_time))

    category = enhancement.get("category")
    if isinstance(category, str) and category.strip():
        updates["category"] = category.strip()

    tags = coerce_str_list(enhancement.get("tags"))
    if tags:
        merged = list(metadata.tags)
        merged.extend(t for t in tags if t not in merged)
        updates["tags"] = merged

    for key, alt in (("topics", None), ("prerequisites", None), ("related_concepts", "relatedConcepts")):
        values = coerce_str_list(enhancement.get(key, enhancement.get(alt) if alt else None))
        if values:
            updates[key] = values

    sentiment = enhancement.get("sentiment")
    if isinstance(sentiment, str) and sentiment.lower() in SENTIMENTS:
        updates["sentiment"] = sentiment.lower()

    complexity = enhancement.get("complexity")
    if complexity is not None and not isinstance(complexity, bool):
        score = coerce_float(complexity, -1.0)
        if 1 <= score <= 10:
            updates["complexity"] = int(round(score))

    actionable = enhancement.get("actionable")
    if isinstance(actionable, bool):
        updates["actionable"] = actionable

    return metadata.model_copy(update=updates)


class DocumentProcessor:
    """Chunks, embeds, and enriches raw documents."""

    def __init__(
        self,
        llm_client,
        gateway: EmbeddingGateway,
        max_concurrency: int = 8,
        chunker: Optional[SemanticChunker] = None,
    ):
        self._llm = llm_client
        self._gateway = gateway
        self._chunker = chunker or SemanticChunker(llm_client)
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def process(self, raw: RawDocument) -> Document:
        """
        Process one raw document.

        Raises:
            ChunkingError: raw content is empty or whitespace only
            DimensionMismatch: the Embedding Service returned a wrong-length vector
        """
        if not raw.content or not raw.content.strip():
            raise ChunkingError(f"Document {raw.id} has empty content")

        logger.info("Processing document %s (%d chars)", raw.id, len(raw.content))

        drafts, used_fallback = await self._chunker.chunk(raw.content, raw.title)

        doc_text = f"{raw.title}\n{raw.summary}\n{raw.content[:DOC_EMBED_CONTENT_CHARS]}"
        doc_embedding, chunk_embeddings, keywords, metadata = await asyncio.gather(
            self._gateway.embed(doc_text),
            self._gateway.embed_many([d.content for d in drafts]),
            asyncio.gather(*(self._extract_keywords(d) for d in drafts)),
            self._enhance_metadata(raw),
        )

        chunks = [
            Chunk(
                id=f"{raw.id}_chunk_{i}",
                content=draft.content,
                embedding=emb.vector,
                position=i,
                metadata=ChunkMetadata(
                    chunk_type=draft.chunk_type,
                    importance=draft.importance,
                    keywords=kws,
                ),
            )
            for i, (draft, emb, kws) in enumerate(zip(drafts, chunk_embeddings, keywords))
        ]

        degraded = doc_embedding.degraded or any(e.degraded for e in chunk_embeddings)
        if degraded:
            logger.warning("Document %s embedded with fallback vectors", raw.id)

        document = Document(
            id=raw.id,
            content=raw.content,
            metadata=metadata,
            embedding=doc_embedding.vector,
            chunks=chunks,
            degraded=degraded,
        )
        logger.info(
            "Processed document %s: %d chunks%s",
            raw.id, len(chunks), " (fixed-size)" if used_fallback else "",
        )
        return document

    async def process_batch(self, raws: List[RawDocument]) -> IngestReport:
        """Process several documents; a failure is recorded, never fatal to the batch."""
        results = await asyncio.gather(
            *(self.process(raw) for raw in raws), return_exceptions=True
        )

        report = IngestReport()
        for raw, result in zip(raws, results):
            if isinstance(result, Document):
                report.documents.append(result)
            elif isinstance(result, Exception):
                logger.warning("Failed to process document %s: %s", raw.id, result)
                report.failures.append(IngestFailure(document_id=raw.id, error=str(result)))
            else:
                raise result
        return report

    async def _extract_keywords(self, draft: ChunkDraft) -> List[str]:
        async with self._semaphore:
            try:
                raw = await self._llm.acomplete(
                    KEYWORD_PROMPT.format(text=draft.content[:KEYWORD_TEXT_CHARS]),
                    temperature=0.2,
                )
            except ServiceUnavailable as e:
                logger.debug("Keyword extraction failed: %s", e)
                return []
        return coerce_str_list(parse_llm_list(raw), limit=10)

    async def _enhance_metadata(self, raw: RawDocument) -> DocumentMetadata:
        metadata = raw.to_metadata()
        async with self._semaphore:
            try:
                response = await self._llm.acomplete(
                    ENHANCE_PROMPT.format(
                        title=raw.title, content=raw.content[:ENHANCE_CONTENT_CHARS]
                    ),
                    temperature=0.3,
                )
            except ServiceUnavailable as e:
                logger.warning("Metadata enhancement failed for %s: %s", raw.id, e)
                return metadata
        return merge_enhancement(metadata, parse_llm_json(response))
