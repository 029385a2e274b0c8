"""Retrieval Collaborators for Agentic RAG

The pipeline only needs ``search(query, folder_ids, top_k) -> chunks``.
Two backends are provided:
    - HttpRetriever: the hosted retrieval service (query expansion, HyDE
      and reranking happen on the service side)
    - ChromaRetriever: a local ChromaDB collection for development
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .state import RetrievedChunk

logger = logging.getLogger(__name__)


class RetrievalError(Exception):
    """Retrieval backend failed or returned an unusable payload."""


class HttpRetriever:
    """Client for the retrieval service's search endpoint."""

    def __init__(
        self,
        service_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 20.0,
        use_query_expansion: bool = True,
        use_hyde: bool = True,
        use_reranking: bool = True
    ):
        self.service_url = service_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.use_query_expansion = use_query_expansion
        self.use_hyde = use_hyde
        self.use_reranking = use_reranking

    def _build_payload(self, query: str, folder_ids: Optional[List[str]], top_k: int) -> Dict[str, Any]:
        return {
            "query": query,
            "config": {
                "top_k": top_k,
                "rerank_top_n": min(top_k, 5),
                "use_query_expansion": self.use_query_expansion,
                "use_hyde": self.use_hyde,
                "use_reranking": self.use_reranking,
                "folder_ids": folder_ids,
            },
        }

    async def search(
        self,
        query: str,
        folder_ids: Optional[List[str]] = None,
        top_k: int = 5
    ) -> List[RetrievedChunk]:
        """
        Search the retrieval service.

        Raises:
            RetrievalError: Transport failure, non-2xx status or bad payload
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.service_url,
                    json=self._build_payload(query, folder_ids, top_k),
                    headers=headers
                )
        except httpx.HTTPError as e:
            raise RetrievalError(f"Retrieval request failed: {e}") from e

        if response.status_code != 200:
            raise RetrievalError(f"Retrieval service returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RetrievalError("Retrieval service returned invalid JSON") from e

        chunks = data.get("chunks") if isinstance(data, dict) else None
        if not isinstance(chunks, list):
            return []
        return [RetrievedChunk.from_dict(c) for c in chunks if isinstance(c, dict)]


class ChromaRetriever:
    """Search a local ChromaDB collection by query text."""

    def __init__(self, chroma_path: str, collection_name: str):
        import chromadb

        self.client = chromadb.PersistentClient(path=chroma_path)
        self.collection = self.client.get_or_create_collection(collection_name)
        logger.info(f"Loaded Chroma collection: {collection_name}")

    def _query(self, query: str, folder_ids: Optional[List[str]], top_k: int) -> List[RetrievedChunk]:
        where = {"folder_id": {"$in": folder_ids}} if folder_ids else None
        results = self.collection.query(
            query_texts=[query],
            n_results=top_k,
            where=where,
            include=["documents", "metadatas", "distances"]
        )

        chunks = []
        if not results.get("documents") or not results["documents"][0]:
            return chunks

        for i in range(len(results["documents"][0])):
            metadata = results["metadatas"][0][i] or {}
            chunks.append(RetrievedChunk(
                id=results["ids"][0][i],
                source_file=str(metadata.get("source_file") or metadata.get("filename") or "unknown"),
                content=results["documents"][0][i] or "",
                relevance_score=round(1 - results["distances"][0][i], 4)  # Convert distance to similarity
            ))
        return chunks

    async def search(
        self,
        query: str,
        folder_ids: Optional[List[str]] = None,
        top_k: int = 5
    ) -> List[RetrievedChunk]:
        try:
            return await asyncio.to_thread(self._query, query, folder_ids, top_k)
        except Exception as e:
            raise RetrievalError(f"Chroma query failed: {e}") from e


class NullRetriever:
    """Retriever used when no backend is configured; always empty."""

    async def search(
        self,
        query: str,
        folder_ids: Optional[List[str]] = None,
        top_k: int = 5
    ) -> List[RetrievedChunk]:
        return []


def create_retriever(retrieval_config):
    """
    Factory function to create the configured retriever.

    Args:
        retrieval_config: RetrievalConfig instance

    Returns:
        HttpRetriever, ChromaRetriever, or NullRetriever when unconfigured
    """
    if retrieval_config.backend == "chroma":
        return ChromaRetriever(retrieval_config.chroma_path, retrieval_config.collection_name)

    if not retrieval_config.service_url:
        logger.warning("Retrieval service URL not configured. Knowledge search will return no documents.")
        return NullRetriever()

    return HttpRetriever(
        service_url=retrieval_config.service_url,
        api_key=retrieval_config.api_key,
        timeout_seconds=retrieval_config.timeout_seconds,
        use_query_expansion=retrieval_config.use_query_expansion,
        use_hyde=retrieval_config.use_hyde,
        use_reranking=retrieval_config.use_reranking
    )
