"""
ChromaDB vector backend.

One collection per namespace, cosine space. Embeddings are computed by the
adapter and passed in explicitly, so collections are created without an
embedding function. Chunk fields travel as flat metadata and are restored
with Chunk.from_metadata().
"""

from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from hybridrag.chunking.models import Chunk
from hybridrag.core.logging import get_logger
from hybridrag.shared.lazy_imports import lazy_property
from hybridrag.storage.base import EmbeddedVector, VectorBackend, VectorHit

logger = get_logger(__name__)

PAGE_SIZE = 500


class ChromaVectorBackend(VectorBackend):
    """Persistent ChromaDB storage."""

    name = "chromadb"

    def __init__(self, persist_directory: Path, collection_prefix: str = "hybridrag") -> None:
        assert persist_directory is not None, "persist_directory cannot be None"
        self.persist_directory = Path(persist_directory)
        self.collection_prefix = collection_prefix
        self._collections: Dict[str, Any] = {}
        self.persist_directory.mkdir(parents=True, exist_ok=True)

    @lazy_property
    def client(self) -> Any:
        import chromadb

        return chromadb.PersistentClient(path=str(self.persist_directory))

    def _collection_name(self, namespace: str) -> str:
        return f"{self.collection_prefix}-{namespace}"[:63].rstrip("-_.")

    def _namespace_of(self, collection_name: str) -> Optional[str]:
        prefix = f"{self.collection_prefix}-"
        if not collection_name.startswith(prefix):
            return None
        return collection_name[len(prefix):]

    def _collection(self, namespace: str) -> Any:
        if namespace not in self._collections:
            self._collections[namespace] = self.client.get_or_create_collection(
                name=self._collection_name(namespace),
                metadata={"hnsw:space": "cosine"},
            )
        return self._collections[namespace]

    def upsert(self, namespace: str, vectors: Sequence[EmbeddedVector]) -> int:
        if not vectors:
            return 0
        self._collection(namespace).upsert(
            ids=[v.vector_id for v in vectors],
            embeddings=[list(v.embedding) for v in vectors],
            documents=[v.chunk.text for v in vectors],
            metadatas=[v.chunk.to_metadata() for v in vectors],
        )
        return len(vectors)

    def query(
        self, namespace: str, embedding: Sequence[float], top_k: int
    ) -> List[VectorHit]:
        collection = self._collection(namespace)
        available = collection.count()
        if available == 0 or top_k <= 0:
            return []

        result = collection.query(
            query_embeddings=[list(embedding)],
            n_results=min(top_k, available),
            include=["metadatas", "distances"],
        )
        if not (result["ids"] and result["ids"][0]):
            return []

        hits = []
        for metadata, distance in zip(result["metadatas"][0], result["distances"][0]):
            hits.append(
                VectorHit(
                    chunk=Chunk.from_metadata(metadata),
                    score=1.0 - float(distance),
                    namespace=namespace,
                )
            )
        return hits

    def delete(self, namespace: str, vector_ids: Sequence[str]) -> int:
        if not vector_ids:
            return 0
        self._collection(namespace).delete(ids=list(vector_ids))
        return len(vector_ids)

    def namespaces(self) -> List[str]:
        names = []
        for collection in self.client.list_collections():
            name = collection if isinstance(collection, str) else collection.name
            namespace = self._namespace_of(name)
            if namespace:
                names.append(namespace)
        return sorted(names)

    def count(self, namespace: Optional[str] = None) -> int:
        names = [namespace] if namespace is not None else self.namespaces()
        return sum(self._collection(name).count() for name in names)

    def iter_chunks(self, namespace: Optional[str] = None) -> Iterator[Chunk]:
        names = [namespace] if namespace is not None else self.namespaces()
        for name in names:
            collection = self._collection(name)
            offset = 0
            while True:
                page = collection.get(
                    include=["metadatas"], limit=PAGE_SIZE, offset=offset
                )
                metadatas = page.get("metadatas") or []
                for metadata in metadatas:
                    yield Chunk.from_metadata(metadata)
                if len(metadatas) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE

    def clear(self) -> None:
        for name in self.namespaces():
            self.client.delete_collection(self._collection_name(name))
        self._collections.clear()
        logger.info("Cleared ChromaDB collections", path=str(self.persist_directory))
