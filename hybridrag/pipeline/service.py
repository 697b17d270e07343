"""
RAG service: the composition root of the question-answering pipeline.

Flow
----
    question
       │
       ├─→ QueryAnalyzer.classify_query()
       ├─→ PerformanceOptimizer.optimize_query() ──→ QueryCache hit? ──→ return
       ├─→ ConversationMemory.get_relevant_history()
       ├─→ QueryExpander.expand_query()
       ├─→ HybridSearchEngine.intelligent_search()
       ├─→ ResponseSynthesizer.synthesize_response()
       ├─→ QualityValidator.validate_response()
       ├─→ ConversationMemory.update_context()
       └─→ QueryCache.set_cached_query()  (cacheable questions, good answers)

The service owns every component and is constructed once by the process
(``create_app(service)`` or the CLI) and passed to request handlers.
``initialize()`` builds the lexical index; requests made before it
finishes fall back to semantic-only search.

Streaming
---------
``stream_chain()`` yields ``search_start``, ``search_complete``, zero or
more ``content`` events, then exactly one ``done`` or ``error``. Closing
the generator early discards the rest of the work.
"""

import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from hybridrag.chunking.hybrid_chunker import HybridChunker
from hybridrag.chunking.models import Chunk
from hybridrag.chunking.tokenizer import TokenCounter
from hybridrag.core.config import Config
from hybridrag.core.errors import to_user_error
from hybridrag.core.exceptions import ValidationError
from hybridrag.core.logging import PipelineLogger, get_logger
from hybridrag.llm.base import LLMClient
from hybridrag.llm.factory import get_generation_config, get_llm_client
from hybridrag.pipeline.models import (
    CONTENT,
    DONE,
    ERROR,
    SEARCH_COMPLETE,
    SEARCH_START,
    ChainResult,
    StreamEvent,
)
from hybridrag.query.analyzer import QueryAnalyzer
from hybridrag.query.cache import QueryCache
from hybridrag.query.expander import QueryExpander
from hybridrag.query.memory import ConversationMemory
from hybridrag.query.models import QueryAnalysis
from hybridrag.query.optimizer import OptimizationPlan, PerformanceMetrics, PerformanceOptimizer
from hybridrag.retrieval.hybrid import HybridSearchEngine, HybridSearchResponse
from hybridrag.storage.base import VectorBackend
from hybridrag.storage.embeddings import EmbeddingProvider
from hybridrag.storage.vector_store import (
    IngestionSummary,
    VectorStoreAdapter,
    create_vector_backend,
)
from hybridrag.synthesis.synthesizer import ResponseSynthesis, ResponseSynthesizer
from hybridrag.synthesis.validator import QualityValidator

logger = get_logger(__name__)

MAX_QUESTION_CHARS = 2000
DEFAULT_NAMESPACE_KEY = "default"
DEFAULT_SESSION = "default"
INGEST_SUFFIXES = frozenset({".md", ".markdown", ".txt"})

_UNSET: Any = object()


class RAGService:
    """
    Question answering over ingested documents.

    Args:
        config: HybridRAG configuration
        embedder: Embedding provider (defaults to the configured one)
        backend: Vector backend (defaults to the configured one)
        llm: LLM client; None disables the model, omitted uses the config
        token_counter: Token counter for the chunker (defaults to tiktoken)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        embedder: Optional[EmbeddingProvider] = None,
        backend: Optional[VectorBackend] = None,
        llm: Optional[LLMClient] = _UNSET,
        token_counter: Optional[TokenCounter] = None,
    ) -> None:
        self.config = config or Config()
        self.chunker = HybridChunker(self.config.chunking, token_counter)
        self.vector_store = VectorStoreAdapter(
            self.config.vector_store,
            embedder=embedder,
            backend=backend or create_vector_backend(self.config),
        )
        self.engine = HybridSearchEngine(self.vector_store, self.config.retrieval)
        self.analyzer = QueryAnalyzer()
        self.expander = QueryExpander()
        self.cache = QueryCache(self.config.cache)
        self.optimizer = PerformanceOptimizer(self.cache)

        llm_client = get_llm_client(self.config) if llm is _UNSET else llm
        self.synthesizer = ResponseSynthesizer(
            llm_client, self.config.synthesis, get_generation_config(self.config)
        )
        self.validator = QualityValidator(self.config.synthesis)

        self._sessions: "OrderedDict[str, ConversationMemory]" = OrderedDict()
        self._sessions_lock = threading.Lock()
        self._init_lock = threading.Lock()
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self, build_index: bool = True) -> None:
        """
        Prepare the service for requests.

        Args:
            build_index: Build the lexical index now; otherwise it is built
                in the background on first search.
        """
        with self._init_lock:
            if self._initialized:
                return
            if build_index:
                self.engine.build_index()
                self.expander.observe_corpus(c.text for c in self.vector_store.iter_chunks())
            self._initialized = True
        logger.info(
            "RAG service initialized",
            vectors=self.vector_store.count(),
            lexical_documents=len(self.engine.lexical),
        )

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize(build_index=False)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest_text(
        self, text: str, source_document: str, batch_size: Optional[int] = None
    ) -> IngestionSummary:
        """
        Chunk, embed and index one document.

        Unchanged documents are skipped; changed ones replace their old
        chunks. Cached answers are dropped when anything changed.
        """
        if not source_document or not source_document.strip():
            raise ValidationError("source_document must not be empty")

        pipeline_log = PipelineLogger(source_document)
        pipeline_log.start_stage("chunk")
        chunks = self.chunker.chunk(text or "", source_document)

        pipeline_log.start_stage("embed")
        summary = self.vector_store.embed_and_store(chunks, batch_size=batch_size)

        pipeline_log.start_stage("index")
        self._apply_to_indexes(chunks, summary)
        failed = len(summary.failed_batches)
        pipeline_log.finish(
            success=summary.errors == 0,
            chunks=len(chunks),
            error=f"{failed} failed batches" if failed else None,
        )
        return summary

    def ingest_paths(
        self, paths: Iterable[Union[str, Path]], batch_size: Optional[int] = None
    ) -> IngestionSummary:
        """Ingest text/markdown files; directories are walked recursively."""
        total = IngestionSummary()
        start = time.perf_counter()
        for path in self._collect_files(paths):
            text = path.read_text(encoding="utf-8", errors="replace")
            summary = self.ingest_text(text, path.name, batch_size=batch_size)
            total.processed += summary.processed
            total.updated += summary.updated
            total.skipped += summary.skipped
            total.errors += summary.errors
            total.total_chunks += summary.total_chunks
            total.stored_chunks += summary.stored_chunks
            total.failed_batches.extend(summary.failed_batches)
        total.duration_seconds = time.perf_counter() - start
        return total

    @staticmethod
    def _collect_files(paths: Iterable[Union[str, Path]]) -> List[Path]:
        files: List[Path] = []
        for raw in paths:
            path = Path(raw)
            if path.is_dir():
                files.extend(
                    p for p in sorted(path.rglob("*"))
                    if p.is_file() and p.suffix.lower() in INGEST_SUFFIXES
                )
            elif path.is_file():
                files.append(path)
            else:
                raise ValidationError(f"Path not found: {path}")
        return files

    def _apply_to_indexes(self, chunks: Sequence[Chunk], summary: IngestionSummary) -> None:
        if summary.errors or not (summary.processed or summary.updated):
            return
        sources = {c.source_document for c in chunks}
        if self.engine.lexical.is_built:
            for source in sources:
                self.engine.lexical.remove_document(source)
            self.engine.lexical.add_chunks(chunks)
        self.expander.observe_corpus(c.text for c in chunks)
        self.cache.clear()

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    def call_chain(
        self,
        question: str,
        chat_history: str = "",
        session_id: str = DEFAULT_SESSION,
        namespace: Optional[str] = None,
    ) -> ChainResult:
        """
        Answer a question.

        Args:
            question: User question
            chat_history: Prior transcript ("User: ...\\nAssistant: ...")
            session_id: Conversation memory to use and update
            namespace: Restrict retrieval to one namespace

        Returns:
            ChainResult; ``cached`` is True when served from the query cache

        Raises:
            ValidationError: Empty or oversized question
            CircuitOpenError: Vector store unavailable and no lexical index
        """
        question = self.validate_question(question)
        chat_history = chat_history or ""
        self._ensure_initialized()
        start = time.perf_counter()

        analysis = self.analyzer.classify_query(question, chat_history)
        plan = self.optimizer.optimize_query(
            question, analysis, chat_history, namespace or DEFAULT_NAMESPACE_KEY
        )
        cached = self._cached(question, chat_history, namespace, plan)
        if cached is not None:
            self.optimizer.record_metrics(
                PerformanceMetrics(total_time=time.perf_counter() - start, cached=True,
                                   quality_score=cached.quality.overall_score)
            )
            return cached

        search, history = self._search(question, analysis, plan, chat_history, session_id, namespace)
        retrieval_time = time.perf_counter() - start

        synthesis_start = time.perf_counter()
        synthesis = self.synthesizer.synthesize_response(
            question, analysis, search.documents, history
        )
        synthesis_time = time.perf_counter() - synthesis_start

        return self._finish(
            question, chat_history, session_id, namespace, plan, analysis, search, synthesis,
            start, retrieval_time, synthesis_time,
        )

    def stream_chain(
        self,
        question: str,
        chat_history: str = "",
        session_id: str = DEFAULT_SESSION,
        namespace: Optional[str] = None,
    ) -> Iterator[StreamEvent]:
        """
        Answer a question as a stream of events.

        Errors never propagate; they become the terminal ``error`` event
        with a user-facing message.
        """
        try:
            question = self.validate_question(question)
            chat_history = chat_history or ""
            self._ensure_initialized()
            start = time.perf_counter()

            analysis = self.analyzer.classify_query(question, chat_history)
            yield StreamEvent(SEARCH_START, {"query": question, "analysis": analysis.to_dict()})

            plan = self.optimizer.optimize_query(
                question, analysis, chat_history, namespace or DEFAULT_NAMESPACE_KEY
            )
            cached = self._cached(question, chat_history, namespace, plan)
            if cached is not None:
                yield StreamEvent(SEARCH_COMPLETE, self._search_summary(cached.search_metadata, cached=True))
                yield StreamEvent(CONTENT, {"text": cached.text})
                yield StreamEvent(DONE, self._done_payload(cached))
                return

            search, history = self._search(question, analysis, plan, chat_history, session_id, namespace)
            retrieval_time = time.perf_counter() - start
            yield StreamEvent(SEARCH_COMPLETE, self._search_summary(search.search_metadata))

            synthesis_start = time.perf_counter()
            pieces: List[str] = []
            answer = self.synthesizer.stream_response(
                question, analysis, search.documents, history
            )
            for piece in answer:
                pieces.append(piece)
                yield StreamEvent(CONTENT, {"text": piece})

            synthesis = self.synthesizer.build_synthesis(
                question, analysis, search.documents, "".join(pieces).strip(),
                used_llm=answer.used_llm,
            )
            synthesis_time = time.perf_counter() - synthesis_start

            result = self._finish(
                question, chat_history, session_id, namespace, plan, analysis, search, synthesis,
                start, retrieval_time, synthesis_time,
            )
            yield StreamEvent(DONE, self._done_payload(result))
        except Exception as e:
            info = to_user_error(e, context="stream", language=self.config.synthesis.language)
            payload: Dict[str, Any] = {
                "message": info.user_message,
                "error_type": info.error_type.value,
            }
            if info.retry_after_seconds is not None:
                payload["retry_after_seconds"] = round(info.retry_after_seconds, 1)
            yield StreamEvent(ERROR, payload)

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    @staticmethod
    def validate_question(question: Any) -> str:
        if not isinstance(question, str) or not question.strip():
            raise ValidationError("Question must not be empty")
        question = question.strip()
        if len(question) > MAX_QUESTION_CHARS:
            raise ValidationError(f"Question exceeds {MAX_QUESTION_CHARS} characters")
        return question

    def _cached(
        self,
        question: str,
        chat_history: str,
        namespace: Optional[str],
        plan: OptimizationPlan,
    ) -> Optional[ChainResult]:
        if not plan.should_cache:
            return None
        result = self.cache.get_cached_query(
            question, namespace or DEFAULT_NAMESPACE_KEY, chat_history
        )
        if result is not None:
            plan.cache_hit = True
            logger.info("Serving cached answer", key=plan.cache_key)
        return result

    def _search(
        self,
        question: str,
        analysis: QueryAnalysis,
        plan: OptimizationPlan,
        chat_history: str,
        session_id: str,
        namespace: Optional[str],
    ) -> Tuple[HybridSearchResponse, str]:
        memory = self.get_memory(session_id)
        relevant = memory.get_relevant_history(question, analysis.key_entities)
        history = memory.format_history(relevant)

        expansion = self.expander.expand_query(plan.optimized_query, analysis, chat_history)
        search = self.engine.intelligent_search(
            plan.optimized_query,
            analysis,
            k=analysis.suggested_k,
            score_threshold=self.config.retrieval.score_threshold,
            enable_fuse=self.config.retrieval.enable_fuse,
            expanded_queries=[question] + expansion.expanded_queries,
            namespace=namespace,
        )
        return search, history

    def _finish(
        self,
        question: str,
        chat_history: str,
        session_id: str,
        namespace: Optional[str],
        plan: OptimizationPlan,
        analysis: QueryAnalysis,
        search: HybridSearchResponse,
        synthesis: ResponseSynthesis,
        start: float,
        retrieval_time: float,
        synthesis_time: float,
    ) -> ChainResult:
        validation_start = time.perf_counter()
        quality = self.validator.validate_response(question, analysis, synthesis, search.documents)
        validation_time = time.perf_counter() - validation_start

        self.get_memory(session_id).update_context(
            question,
            synthesis.synthesized_response,
            analysis,
            [a.source for a in synthesis.source_attribution],
        )

        total = time.perf_counter() - start
        result = ChainResult(
            text=synthesis.synthesized_response,
            analysis=analysis,
            quality=quality,
            sources=synthesis.source_attribution,
            reasoning=synthesis.reasoning_chain,
            search_metadata=search.search_metadata,
            response_style=synthesis.response_style,
            completeness=synthesis.completeness,
            confidence=synthesis.confidence,
            processing_time=total,
            used_llm=synthesis.used_llm,
        )

        if plan.should_cache and self.optimizer.should_cache_result(quality.overall_score):
            self.cache.set_cached_query(
                question, namespace or DEFAULT_NAMESPACE_KEY, result, chat_history
            )

        self.optimizer.record_metrics(
            PerformanceMetrics(
                retrieval_time=retrieval_time,
                synthesis_time=synthesis_time,
                validation_time=validation_time,
                total_time=total,
                documents_retrieved=len(search.documents),
                quality_score=quality.overall_score,
            )
        )
        logger.info(
            "Answered question",
            query_type=analysis.query_type.value,
            documents=len(search.documents),
            quality=quality.overall_score,
            seconds=round(total, 3),
        )
        return result

    def _search_summary(self, metadata: Dict[str, Any], cached: bool = False) -> Dict[str, Any]:
        summary = {
            key: metadata.get(key, 0)
            for key in ("total_results", "bm25_results", "semantic_results", "fuse_results",
                        "search_time")
        }
        summary["search_strategy"] = metadata.get("search_strategy", "cache" if cached else "")
        summary["health"] = self.engine.health_check()["status"]
        summary["cached"] = cached
        return summary

    @staticmethod
    def _done_payload(result: ChainResult) -> Dict[str, Any]:
        return {
            "sources": [s.to_dict() for s in result.sources],
            "response_metadata": {
                "analysis": result.analysis.to_dict(),
                "quality": result.quality.to_dict(),
                "reasoning": list(result.reasoning),
                "response_style": result.response_style,
                "completeness": result.completeness,
                "confidence": result.confidence,
                "processing_time": round(result.processing_time, 4),
                "used_llm": result.used_llm,
                "search_metadata": dict(result.search_metadata),
                "cached": result.cached,
            },
        }

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_memory(self, session_id: str = DEFAULT_SESSION) -> ConversationMemory:
        """Conversation memory for a session, created on first use."""
        with self._sessions_lock:
            memory = self._sessions.get(session_id)
            if memory is None:
                memory = ConversationMemory(self.config.memory)
                self._sessions[session_id] = memory
                while len(self._sessions) > max(1, self.config.memory.max_sessions):
                    self._sessions.popitem(last=False)
            else:
                self._sessions.move_to_end(session_id)
            return memory

    def clear_session(self, session_id: str = DEFAULT_SESSION) -> bool:
        """Forget a conversation; returns False when the session is unknown."""
        with self._sessions_lock:
            memory = self._sessions.pop(session_id, None)
        if memory is None:
            return False
        memory.clear_session()
        return True

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def health_check(self) -> Dict[str, Any]:
        search = self.engine.health_check()
        with self._sessions_lock:
            sessions = len(self._sessions)
        return {
            "status": search["status"],
            "issues": search["issues"],
            "stats": {
                "search": search["stats"],
                "vector_store": self.vector_store.health_check(),
                "cache": self.cache.get_stats(),
                "expander": self.expander.get_cache_stats(),
                "performance": self.optimizer.get_performance_summary(),
                "quality": self.validator.get_quality_trends(),
                "sessions": sessions,
                "initialized": self._initialized,
            },
        }

    def reset_circuit_breaker(self) -> Dict[str, Any]:
        """Force the vector store circuit breaker closed."""
        return self.vector_store.reset_circuit_breaker().to_dict()
