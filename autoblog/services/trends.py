"""
Trending topics - pulls the Google Trends daily RSS feed for a country and
turns its searches into queue topics.

The parsed feed is cached in Redis per country. An optional AI pass keeps
only the searches relevant to the site's categories. Topics enter the queue
with source="trending" at priority 50, skipping any text that is already
pending.
"""
import json
import logging
import re
import xml.etree.ElementTree as ET
from typing import Awaitable, Callable, Optional

import httpx

from autoblog.config import Settings, get_settings
from autoblog.integrations.base import SettingsProvider
from autoblog.services.queue import TopicQueue
from autoblog.utils.errors import AutoblogError, TrendsError
from autoblog.utils.redis_client import get_redis, make_key

logger = logging.getLogger(__name__)

TRENDING_PRIORITY = 50
FILTER_SYSTEM_PROMPT = "You are a content strategist. Return only valid JSON."

COUNTRIES = {
    "US": "United States",
    "GB": "United Kingdom",
    "CA": "Canada",
    "AU": "Australia",
    "DE": "Germany",
    "FR": "France",
    "IN": "India",
    "JP": "Japan",
    "BR": "Brazil",
    "MX": "Mexico",
    "ES": "Spain",
    "IT": "Italy",
    "NL": "Netherlands",
    "PL": "Poland",
    "SE": "Sweden",
    "NO": "Norway",
    "DK": "Denmark",
    "FI": "Finland",
    "BE": "Belgium",
    "AT": "Austria",
    "CH": "Switzerland",
    "IE": "Ireland",
    "NZ": "New Zealand",
    "SG": "Singapore",
    "HK": "Hong Kong",
    "KR": "South Korea",
    "TW": "Taiwan",
    "ID": "Indonesia",
    "TH": "Thailand",
    "MY": "Malaysia",
    "PH": "Philippines",
    "VN": "Vietnam",
    "ZA": "South Africa",
    "AE": "United Arab Emirates",
    "SA": "Saudi Arabia",
    "EG": "Egypt",
    "NG": "Nigeria",
    "KE": "Kenya",
    "AR": "Argentina",
    "CL": "Chile",
    "CO": "Colombia",
    "PE": "Peru",
}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> str:
    for child in element:
        if _local_name(child.tag) == name:
            return (child.text or "").strip()
    return ""


def parse_trends_rss(xml_text: str) -> list[dict]:
    """
    Parse the feed into [{"title", "traffic", "link", "pub_date", "news_items"}].
    Namespaced ht:* elements are matched by local name. Returns [] for
    malformed XML or a feed without items.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.warning("Trends feed is not valid XML: %s", str(e))
        return []

    topics = []
    for item in root.iter("item"):
        title = _child_text(item, "title")
        if not title:
            continue
        news_items = [
            {
                "title": _child_text(news, "news_item_title"),
                "url": _child_text(news, "news_item_url"),
                "source": _child_text(news, "news_item_source"),
            }
            for news in item
            if _local_name(news.tag) == "news_item"
        ]
        topics.append({
            "title": title,
            "traffic": _child_text(item, "approx_traffic"),
            "link": _child_text(item, "link"),
            "pub_date": _child_text(item, "pubDate"),
            "news_items": news_items,
        })
    return topics


def filter_prompt(titles: list[str], categories: list[str]) -> str:
    numbered = "\n".join(f"{i}. {title}" for i, title in enumerate(titles, start=1))
    return (
        f"Given these blog categories: {', '.join(categories)}\n\n"
        "Filter the following trending topics and return ONLY the ones that could be "
        "relevant to write about in these categories.\n\n"
        f"Topics:\n{numbered}\n\n"
        "Return the relevant topics as a JSON array of strings. Only include topics "
        "that have a clear connection to the categories."
    )


class TrendsService:
    def __init__(
        self,
        settings: SettingsProvider,
        queue: TopicQueue,
        ai_client_factory: Optional[Callable[[], Awaitable]] = None,
        redis=None,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or get_settings()
        self._settings = settings
        self._queue = queue
        self._ai_client_factory = ai_client_factory
        self._redis = redis
        self._http_client = http_client

    async def _get_redis(self):
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def _country(self, country: Optional[str]) -> str:
        country = (country or await self._settings.get("trending_country") or "US").upper()
        if country not in COUNTRIES:
            raise ValueError(f"Unsupported country: {country}")
        return country

    @staticmethod
    def cache_key(country: str) -> str:
        return make_key("trends", country)

    async def _download(self, country: str) -> str:
        params = {"geo": country}
        headers = {"User-Agent": "autoblog/1.0"}
        try:
            if self._http_client is not None:
                response = await self._http_client.get(self.config.trends_feed_url, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.config.trends_timeout_seconds, follow_redirects=True) as client:
                    response = await client.get(self.config.trends_feed_url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise TrendsError(f"Failed to fetch trends: {e}") from e
        if response.status_code != 200:
            raise TrendsError(f"Failed to fetch trends. HTTP code: {response.status_code}")
        return response.text

    async def fetch(self, country: Optional[str] = None, force_refresh: bool = False) -> list[dict]:
        """Trending searches for a country, from the cache unless force_refresh."""
        country = await self._country(country)
        redis = await self._get_redis()
        key = self.cache_key(country)

        if not force_refresh:
            cached = await redis.get(key)
            if cached:
                return json.loads(cached)

        topics = parse_trends_rss(await self._download(country))
        if not topics:
            raise TrendsError("No trending topics found or failed to parse response.")

        await redis.set(key, json.dumps(topics), ex=self.config.trends_cache_seconds)
        logger.info("Fetched %d trending topics for %s", len(topics), country)
        return topics

    async def get_cached(self, country: Optional[str] = None) -> Optional[list[dict]]:
        redis = await self._get_redis()
        cached = await redis.get(self.cache_key(await self._country(country)))
        return json.loads(cached) if cached else None

    async def clear_cache(self, country: Optional[str] = None) -> None:
        redis = await self._get_redis()
        await redis.delete(self.cache_key(await self._country(country)))

    async def filter_by_categories(self, topics: list[dict], categories: list[str]) -> list[dict]:
        """
        Keep the topics an AI pass judges relevant to the categories.
        Every topic is kept when there is nothing to filter by, the provider
        is not verified or configured, the call fails or the reply holds no
        JSON array.
        """
        if not topics or not categories or self._ai_client_factory is None:
            return topics
        if not await self._settings.get("api_verified"):
            return topics

        titles = [topic["title"] for topic in topics]
        try:
            ai = await self._ai_client_factory()
            result = await ai.generate_text(
                filter_prompt(titles, categories),
                FILTER_SYSTEM_PROMPT,
                model=await self._settings.get("model"),
                max_tokens=500,
                temperature=0.3,
            )
        except AutoblogError as e:
            logger.warning("Trend filtering failed, keeping all topics: %s", e.message)
            return topics

        match = re.search(r"\[.*\]", result["content"], re.DOTALL)
        if not match:
            return topics
        try:
            relevant = json.loads(match.group(0))
        except json.JSONDecodeError:
            return topics
        if not isinstance(relevant, list):
            return topics

        relevant = {str(title) for title in relevant}
        kept = [topic for topic in topics if topic["title"] in relevant]
        logger.info("Trend filter kept %d of %d topics", len(kept), len(topics))
        return kept

    async def add_to_queue(self, topics: list, category_id: Optional[int] = None) -> int:
        """Queue topics (dicts or plain titles), skipping text already pending. Returns the count added."""
        added = 0
        for topic in topics:
            title = (topic["title"] if isinstance(topic, dict) else str(topic)).strip()
            if not title or await self._queue.pending_exists(title):
                continue
            await self._queue.enqueue(
                title,
                category_id=category_id,
                source="trending",
                priority=TRENDING_PRIORITY,
            )
            added += 1
        return added

    async def refresh_if_due(self) -> int:
        """Run refresh() at most once per trends_refresh_seconds across all workers."""
        if not await self._settings.get("trending_enabled"):
            return 0
        redis = await self._get_redis()
        marker = make_key("trends", "refresh")
        if not await redis.set(marker, "1", nx=True, ex=self.config.trends_refresh_seconds):
            return 0
        return await self.refresh()

    async def refresh(self) -> int:
        """Periodic pass: fetch fresh trends, filter, queue the top few. Returns the count added."""
        if not await self._settings.get("trending_enabled"):
            return 0
        try:
            topics = await self.fetch(force_refresh=True)
        except TrendsError as e:
            logger.warning("Trending refresh failed: %s", e.message)
            return 0

        categories = await self._settings.get("trending_categories")
        if categories:
            topics = await self.filter_by_categories(topics, categories)

        added = await self.add_to_queue(topics[:self.config.trends_auto_enqueue_limit])
        logger.info("Trending refresh queued %d topics", added)
        return added
