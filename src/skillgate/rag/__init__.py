from skillgate.rag.pipeline import rank_documents, rank_documents_detailed, top_texts
from skillgate.rag.rerank import Reranker, build_reranker, lexical_score

__all__ = [
    "Reranker",
    "build_reranker",
    "lexical_score",
    "rank_documents",
    "rank_documents_detailed",
    "top_texts",
]
