import re
from typing import List

STOP_WORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would",
    "could", "should", "may", "might", "must", "shall", "can", "need",
    "about", "into", "through", "during", "before", "after", "above",
    "below", "between", "under", "again", "further", "then", "once",
    "here", "there", "when", "where", "why", "how", "all", "each",
    "few", "more", "most", "other", "some", "such", "no", "nor", "not",
    "only", "own", "same", "so", "than", "too", "very", "just", "also",
    "my", "your", "his", "her", "its", "our", "their", "this", "that",
    "these", "those", "am", "being", "both", "i", "me", "we",
    "you", "he", "she", "it", "they", "what", "which", "who", "whom",
})

_PUNCTUATION = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> List[str]:
    """Lower-cased, de-duplicated content words of ``text`` in first-seen order."""
    if not text:
        return []
    words = _PUNCTUATION.sub(" ", text.lower()).split()
    return list(dict.fromkeys(w for w in words if len(w) > 2 and w not in STOP_WORDS))
