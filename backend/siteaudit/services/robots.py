"""
robots.txt resolution.

Reads disallow rules, declared sitemaps and ``Crawl-delay`` for the audit
bot. Any failure (non-2xx, timeout, network) degrades to empty rules so
discovery can continue from the sitemap fallbacks.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from siteaudit.config import AuditConfig
from siteaudit.services.rate_limiter import CrawlRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class RobotsGroup:
    agents: list[str] = field(default_factory=list)
    disallow: list[str] = field(default_factory=list)
    crawl_delay: float | None = None


@dataclass
class RobotsRules:
    """Parsed robots.txt rules that apply to the audit bot."""

    fetched: bool = False
    disallowed_paths: list[str] = field(default_factory=list)
    sitemap_urls: list[str] = field(default_factory=list)
    crawl_delay_ms: int | None = None
    error: str | None = None

    def is_allowed(self, url: str) -> bool:
        """True unless the URL path (with query) matches a disallow rule."""
        parts = urlsplit(url)
        target = parts.path or "/"
        if parts.query:
            target = f"{target}?{parts.query}"
        return not any(_rule_matches(rule, target) for rule in self.disallowed_paths)


def _rule_matches(rule: str, path: str) -> bool:
    # Plain prefixes are the common case; only compile when wildcards are used
    if "*" not in rule and not rule.endswith("$"):
        return path.startswith(rule)
    anchored = rule.endswith("$")
    body = rule[:-1] if anchored else rule
    pattern = ".*".join(re.escape(piece) for piece in body.split("*"))
    if anchored:
        pattern += "$"
    return re.match(pattern, path) is not None


def product_token(user_agent: str) -> str:
    """``SearchFit-AuditBot/1.0 (+https://...)`` -> ``searchfit-auditbot``."""
    return user_agent.split("/", 1)[0].strip().lower()


def parse_robots_txt(content: str, user_agent: str) -> RobotsRules:
    """Parse robots.txt content for the given user agent.

    Groups naming our product token win over ``*``; if none name us, the
    ``*`` groups apply. Sitemap lines are global and always collected.
    """
    groups: list[RobotsGroup] = []
    sitemaps: list[str] = []
    current: RobotsGroup | None = None
    in_agent_block = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "sitemap":
            if value:
                sitemaps.append(value)
            continue

        if key == "user-agent":
            # Consecutive user-agent lines share one group
            if current is None or not in_agent_block:
                current = RobotsGroup()
                groups.append(current)
            current.agents.append(value.lower())
            in_agent_block = True
            continue

        in_agent_block = False
        if current is None:
            continue
        if key == "disallow":
            if value:
                current.disallow.append(value)
        elif key == "crawl-delay":
            try:
                current.crawl_delay = float(value)
            except ValueError:
                logger.debug(f"Ignoring invalid Crawl-delay: {value!r}")

    token = product_token(user_agent)
    # Whole product-token match, so "User-agent: s" does not name us
    matched = [g for g in groups if any(a != "*" and product_token(a) == token for a in g.agents)]
    if not matched:
        matched = [g for g in groups if "*" in g.agents]

    disallowed: list[str] = []
    delays: list[float] = []
    for group in matched:
        for rule in group.disallow:
            if rule not in disallowed:
                disallowed.append(rule)
        if group.crawl_delay is not None:
            delays.append(group.crawl_delay)

    return RobotsRules(
        fetched=True,
        disallowed_paths=disallowed,
        sitemap_urls=sitemaps,
        crawl_delay_ms=int(max(delays) * 1000) if delays else None,
    )


class RobotsResolver:
    """Fetches ``{root}/robots.txt`` through the run's crawl-delay limiter."""

    def __init__(self, client: httpx.AsyncClient, limiter: CrawlRateLimiter, config: AuditConfig):
        self.client = client
        self.limiter = limiter
        self.config = config

    async def resolve(self, root_url: str) -> RobotsRules:
        robots_url = f"{root_url.rstrip('/')}/robots.txt"
        timeout = self.config.robots_timeout_ms / 1000
        try:
            async with self.limiter.slot():
                response = await asyncio.wait_for(
                    self.client.get(robots_url, timeout=timeout, follow_redirects=True),
                    timeout=timeout,
                )
        except asyncio.TimeoutError:
            logger.warning(f"robots.txt timed out after {self.config.robots_timeout_ms}ms: {robots_url}")
            return RobotsRules(error=f"robots.txt timed out after {self.config.robots_timeout_ms}ms")
        except httpx.HTTPError as e:
            logger.warning(f"Could not fetch robots.txt from {robots_url}: {e}")
            return RobotsRules(error=f"robots.txt unavailable: {e}")

        if not response.is_success:
            logger.warning(f"robots.txt returned HTTP {response.status_code}: {robots_url}")
            return RobotsRules(error=f"robots.txt returned HTTP {response.status_code}")

        rules = parse_robots_txt(response.text, self.config.user_agent)
        logger.info(
            f"Loaded robots.txt from {robots_url}: {len(rules.disallowed_paths)} disallow rules, "
            f"{len(rules.sitemap_urls)} sitemaps"
        )
        if rules.crawl_delay_ms:
            logger.info(f"Robots.txt crawl-delay: {rules.crawl_delay_ms}ms")
        return rules
