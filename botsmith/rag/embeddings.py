"""
Query Embeddings
================

Turns a semantic profile search query into a vector, so the database can
rank member profiles by cosine similarity against it.

    "looking for a designer"   → [0.02, -0.15, 0.89, ...]
    "someone who does UI work" → [0.03, -0.14, 0.87, ...]

Member profiles are embedded when they are written (outside this
package); here only the search query is embedded, once per tool call.

Caching:
    The query text is embedded as written. The cache key is the normalized
    query (whitespace collapsed, lowercased), and at most QUERY_CACHE_SIZE
    vectors are kept. `main.run_request` builds a generator per request, so
    the cache never outlives one run.
"""

from collections import OrderedDict

from openai import AsyncOpenAI

from botsmith.utils.logger import Logger

logger = Logger("Embeddings")

QUERY_CACHE_SIZE = 256


def normalize_query(text: str) -> str:
    return " ".join(text.split()).lower()


class EmbeddingGenerator:
    """
    Embeds search queries with an OpenAI-compatible embeddings endpoint.

    Example:
        generator = EmbeddingGenerator(api_key="sk-...")
        vector = await generator.generate("people who know Rust")
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str | None = None,
        timeout_seconds: float = 15.0,
        client: AsyncOpenAI | None = None
    ):
        """
        Args:
            api_key: API key for the embedding endpoint
            model: Must match the model the stored profiles were embedded with
            base_url: Alternative endpoint (None for api.openai.com)
            timeout_seconds: Bound on each embedding call
            client: Pre-built client (tests pass a mock)
        """
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0
        )
        self.model = model
        self._cache: OrderedDict[str, list[float]] = OrderedDict()

    async def generate(self, text: str) -> list[float]:
        """
        Embed one query.

        Raises:
            ValueError: If the query is blank
            openai.APIError: If the embedding service fails
        """
        key = normalize_query(text)
        if not key:
            raise ValueError("Cannot embed an empty query")

        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        response = await self.client.embeddings.create(model=self.model, input=text.strip())
        vector = list(response.data[0].embedding)

        self._cache[key] = vector
        if len(self._cache) > QUERY_CACHE_SIZE:
            self._cache.popitem(last=False)

        logger.debug(f"Embedded query with {self.model} (dim={len(vector)})")
        return vector
