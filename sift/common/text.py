"""Tokenization shared by lexical ranking and query processing."""

import re
from typing import List

STOP_WORDS = {
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "need",
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "my", "your", "his", "its", "our", "their",
    "this", "that", "these", "those",
    "what", "which", "who", "whom", "whose", "where", "when", "why", "how",
    "and", "or", "but", "if", "then", "else", "so", "than",
    "at", "by", "for", "with", "about", "against", "between", "into", "through",
    "to", "from", "in", "on", "of", "off", "over", "under", "up", "down", "out",
    "all", "any", "some", "no", "not", "only", "just", "also", "very", "there",
    "tell", "know", "say", "said", "show", "give", "find",
}

_TOKEN_RE = re.compile(r"[\w][\w+#.-]*[\w+#]|[\w]", re.UNICODE)


def tokenize(text: str, keep_stop_words: bool = False) -> List[str]:
    """Lowercase word tokens; keeps tech terms like ``c++``, ``node.js``, ``gpt-4``."""
    if not text:
        return []
    tokens = [t.lower() for t in _TOKEN_RE.findall(text)]
    if keep_stop_words:
        return tokens
    return [t for t in tokens if t not in STOP_WORDS and len(t) > 1]
