"""
Lightweight topic tags for indexed documents.

Tags are informational only; nothing in retrieval reads them. Caller
supplied key topics come first, then the most frequent content words.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable

_WORD = re.compile(r"[a-zA-Z][a-zA-Z\-]{2,}")

STOPWORDS = frozenset(
    """
    about above after again against all also and any are because been before
    being below between both but can could did does doing down during each
    few for from further had has have having her here hers herself him
    himself his how however into its itself just more most much must not
    now off once only other our ours ourselves out over own same she should
    some such than that the their theirs them themselves then there these
    they this those through too under until upon very was were what when
    where which while who whom why will with would you your yours yourself
    yourselves page one two may might also use used using
    """.split()
)


def extract_topics(
    text: str,
    limit: int = 5,
    key_topics: Iterable[str] = (),
) -> list[str]:
    """
    Derive up to ``limit`` lowercase topic tags.

    Args:
        text: Document text (or summary) to mine for keywords
        limit: Maximum number of tags
        key_topics: Topics supplied with the document; these take precedence
    """
    tags: list[str] = []
    for topic in key_topics:
        topic = topic.strip().lower()
        if topic and topic not in tags:
            tags.append(topic)

    counts = Counter(
        word
        for word in (w.lower().strip("-") for w in _WORD.findall(text or ""))
        if len(word) > 2 and word not in STOPWORDS
    )
    # most_common keeps first-seen order for equal counts
    for word, _ in counts.most_common():
        if len(tags) >= limit:
            break
        if word not in tags:
            tags.append(word)

    return tags[:limit]
