"""
Cost estimation - embedding model pricing.

Pricing is externalized so it can be:
1. Updated independently when OpenAI changes prices
2. Extended for new models
3. Used for dry-run backfill cost projections
"""

# ---------------------------------------------------------------------------
# MODEL PRICING
# ---------------------------------------------------------------------------
# Approximate pricing in USD per 1M input tokens
# Source: https://openai.com/pricing

EMBEDDING_PRICING: dict[str, float] = {
    "text-embedding-3-small": 0.02,
    "text-embedding-3-large": 0.13,
    "text-embedding-ada-002": 0.10,
    "mock-embedding": 0.0,
}

# Unknown models are priced like the default model
DEFAULT_PRICE_PER_MILLION = EMBEDDING_PRICING["text-embedding-3-small"]


# ---------------------------------------------------------------------------
# COST ESTIMATION
# ---------------------------------------------------------------------------


def estimate_embedding_cost(tokens: int, model: str) -> float:
    """
    Estimate cost in USD for embedding ``tokens`` input tokens.

    This is a PURE FUNCTION - no side effects.

    Example:
        >>> estimate_embedding_cost(1_000_000, "text-embedding-3-small")
        0.02
    """
    price = EMBEDDING_PRICING.get(model, DEFAULT_PRICE_PER_MILLION)
    return (tokens / 1_000_000) * price


def estimate_corpus_cost(documents: int, avg_tokens: int, model: str) -> float:
    """
    Project the cost of embedding a whole corpus.

    Useful before kicking off a full (non-dry-run) backfill.
    """
    return estimate_embedding_cost(documents * avg_tokens, model)
