"""
Retriever - Cited Answers over the Knowledge Library

Key Components:
- QueryProcessor: Cleans questions, detects language, extracts keywords
- Searcher: Owner-scoped hybrid (semantic + lexical) search fused with RRF
- Synthesizer: Grounded answer synthesis with a citation manifest

Pipeline:
1. Parse the question
2. Embed it and rank records semantically and lexically
3. Fuse the rankings (K=60, equal weights)
4. Synthesize an answer citing [n] = retrieval rank n
"""

from .fusion import reciprocal_rank_fusion
from .query_processor import ParsedQuery, QueryProcessor, SearchMode
from .searcher import RetrievalCandidate, Searcher, SearchFilters
from .synthesizer import AnswerResult, Synthesizer

__all__ = [
    "AnswerResult",
    "ParsedQuery",
    "QueryProcessor",
    "RetrievalCandidate",
    "SearchFilters",
    "SearchMode",
    "Searcher",
    "Synthesizer",
    "reciprocal_rank_fusion",
]
