"""Lexical normalization shared by every scoring function."""

from typing import Iterable, List, Optional, Sequence


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercase ``text`` and split it into letter/number tokens.

    Every character that is neither a Unicode letter, a Unicode number nor
    whitespace is replaced with a space before splitting, so punctuation
    never sticks to a token. ``None`` and empty input yield ``[]``.

    Example:
        >>> tokenize("VPN: can't connect!")
        ['vpn', 'can', 't', 'connect']
    """
    if not text:
        return []
    cleaned = "".join(
        ch if ch.isalnum() or ch.isspace() else " " for ch in str(text).lower()
    )
    return cleaned.split()


def overlap_score(query_tokens: Sequence[str], doc_tokens: Iterable[str]) -> float:
    """Fraction of query tokens that also occur in the document.

    Query tokens are counted with multiplicity, so the result is always in
    [0, 1]. An empty query scores 0.
    """
    if not query_tokens:
        return 0.0
    vocabulary = set(doc_tokens)
    hits = sum(1 for token in query_tokens if token in vocabulary)
    return hits / len(query_tokens)
