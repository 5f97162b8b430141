"""HTTP clients for the remote dictionary sources.

- ShardClient fetches one letter's JSON shard for a language, with an
  explicit per-request timeout, bounded retries with exponential backoff
  and jitter, and token-bucket pacing.
- DefinitionApiClient queries the single-word fallback API.

Usage:
    from localcache.dictionary.client import ShardClient

    async with ShardClient(base_url) as client:
        entries = await client.fetch_shard(Language.ES, "m")
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Self
from urllib.parse import quote

import httpx

from localcache.core.errors import RateLimitExceeded, ShardFetchError
from localcache.core.logging import get_logger
from localcache.core.rate_limiter import TokenBucket
from localcache.db.languages import Language
from localcache.dictionary.store import DictionaryEntry

logger = get_logger(__name__)

# Default retry configuration
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAYS = [1.0, 2.0, 4.0]  # Exponential backoff delays in seconds

DEFAULT_HEADERS = {"Accept": "application/json", "Cache-Control": "no-cache"}


class _HttpClientOwner:
    """Creates an httpx.AsyncClient unless one is injected, and closes only its own."""

    def __init__(self, http_client: httpx.AsyncClient | None, timeout: float):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            headers=DEFAULT_HEADERS,
            timeout=timeout,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class ShardClient(_HttpClientOwner):
    """Fetches dictionary shards (`{base_url}/{Language}/{letter}.json`).

    Attributes:
        base_url: Root of the shard host
        timeout: Per-request timeout in seconds
        max_retries: Retries for 5xx, 429, timeouts and connection errors
        retry_delays: Delay (seconds) before each retry, last one repeats
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delays: list[float] | None = None,
        rate_limiter: TokenBucket | None = None,
    ):
        super().__init__(http_client, timeout)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delays = retry_delays or DEFAULT_RETRY_DELAYS
        self._rate_limiter = rate_limiter

        logger.debug(
            "ShardClient initialized",
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
        )

    def shard_url(self, language: Language, letter: str) -> str:
        return f"{self.base_url}/{language.info.url_path}/{letter}.json"

    def _should_retry(self, response: httpx.Response, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        return response.status_code == 429 or 500 <= response.status_code < 600

    def _get_retry_delay(self, attempt: int, response: httpx.Response | None = None) -> float:
        """Delay before the next attempt, with ±20% jitter.

        A 429 with a numeric Retry-After header uses that value as the base.
        """
        base_delay = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]

        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    base_delay = float(retry_after)
                except ValueError:
                    pass

        jitter = base_delay * 0.2 * (2 * random.random() - 1)
        return max(0.0, base_delay + jitter)

    async def fetch_shard(self, language: Language, letter: str) -> list[DictionaryEntry]:
        """Fetch and parse one shard.

        Returns:
            Entries with a usable word; malformed items are dropped

        Raises:
            ShardFetchError: On HTTP error, network failure after retries,
                any other httpx error such as a redirect loop,
                timeout after retries, or an unparseable body
        """
        url = self.shard_url(language, letter)
        code = language.value

        for attempt in range(self.max_retries + 1):
            if self._rate_limiter is not None:
                try:
                    # Pacing, not a budget: wait however long the configured rate needs
                    await self._rate_limiter.consume(max_wait=None)
                except RateLimitExceeded as e:
                    raise ShardFetchError(
                        f"Shard {letter}.json for {code} was not requested: {e}",
                        language=code,
                        letter=letter,
                    ) from e

            try:
                logger.debug("Fetching shard", url=url, attempt=attempt + 1)
                response = await self._http.get(url, timeout=self.timeout)

            except httpx.TimeoutException:
                if attempt < self.max_retries:
                    delay = self._get_retry_delay(attempt)
                    logger.warning(
                        "Shard request timed out, retrying",
                        language=code,
                        letter=letter,
                        attempt=attempt + 1,
                        delay=delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ShardFetchError(
                    f"Shard {letter}.json for {code} timed out after {self.timeout}s "
                    f"and {self.max_retries} retries.",
                    language=code,
                    letter=letter,
                ) from None

            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    delay = self._get_retry_delay(attempt)
                    logger.warning(
                        "Shard connection error, retrying",
                        language=code,
                        letter=letter,
                        attempt=attempt + 1,
                        error=str(e),
                        delay=delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ShardFetchError(
                    f"Connection to the shard host failed for {code}/{letter}.json: {e}. "
                    "Check your internet connection and dictionary.base_url.",
                    language=code,
                    letter=letter,
                ) from e

            except httpx.HTTPError as e:
                # Redirect loops, undecodable bodies and the like; retrying won't help
                raise ShardFetchError(
                    f"Request for {code}/{letter}.json failed: {type(e).__name__}: {e}. "
                    "Check dictionary.base_url.",
                    language=code,
                    letter=letter,
                ) from e

            if response.status_code < 400:
                return self._parse(response, language, letter)

            if self._should_retry(response, attempt):
                delay = self._get_retry_delay(attempt, response)
                logger.warning(
                    "Retrying shard request",
                    language=code,
                    letter=letter,
                    status_code=response.status_code,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay=delay,
                )
                await asyncio.sleep(delay)
                continue

            raise ShardFetchError(
                f"Shard {letter}.json for {code} returned HTTP {response.status_code}.",
                language=code,
                letter=letter,
                status_code=response.status_code,
            )

        # Unreachable: the last attempt either returns or raises
        raise ShardFetchError(
            f"Shard {letter}.json for {code} failed after {self.max_retries} retries",
            language=code,
            letter=letter,
        )

    def _parse(self, response: httpx.Response, language: Language, letter: str) -> list[DictionaryEntry]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ShardFetchError(
                f"Shard {letter}.json for {language.value} is not valid JSON: {e}",
                language=language.value,
                letter=letter,
                status_code=response.status_code,
            ) from e

        if not isinstance(payload, list):
            raise ShardFetchError(
                f"Shard {letter}.json for {language.value} is a {type(payload).__name__}, "
                "expected a JSON array of entries.",
                language=language.value,
                letter=letter,
                status_code=response.status_code,
            )

        entries = [entry for item in payload if (entry := _to_entry(item)) is not None]
        dropped = len(payload) - len(entries)
        if dropped:
            logger.warning(
                "Dropped malformed shard items",
                language=language.value,
                letter=letter,
                dropped=dropped,
            )
        return entries


def _to_entry(item: Any) -> DictionaryEntry | None:
    if not isinstance(item, dict):
        return None
    word = item.get("word")
    if not isinstance(word, str) or not word.strip():
        return None
    pos = item.get("pos")
    definition = item.get("definition")
    return DictionaryEntry(
        word=word.strip().lower(),
        pos=str(pos) if pos is not None else None,
        definition=str(definition) if definition is not None else None,
    )


class DefinitionApiClient(_HttpClientOwner):
    """Single-word fallback lookups (`{api_host}/entries/{lang}/{word}`)."""

    def __init__(
        self,
        api_host: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        super().__init__(http_client, timeout)
        self.api_host = api_host.rstrip("/")
        self.timeout = timeout

    async def lookup(self, word: str, language: str) -> DictionaryEntry | None:
        """Return the first part of speech and definition for a word, or None.

        Network and format failures are logged and reported as a miss.
        """
        normalized = word.strip().lower()
        url = f"{self.api_host}/entries/{quote(language)}/{quote(normalized)}"

        try:
            response = await self._http.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("Definition API request failed", word=normalized, error=str(e))
            return None

        if response.status_code != 200:
            logger.debug(
                "Definition API miss",
                word=normalized,
                language=language,
                status_code=response.status_code,
            )
            return None

        try:
            meaning = response.json()[0]["meanings"][0]
            definition = meaning["definitions"][0].get("definition") or ""
            pos = meaning.get("partOfSpeech") or "unknown"
        except (ValueError, LookupError, TypeError, AttributeError) as e:
            logger.warning("Unexpected definition API response", word=normalized, error=str(e))
            return None

        return DictionaryEntry(word=normalized, pos=pos, definition=definition)
