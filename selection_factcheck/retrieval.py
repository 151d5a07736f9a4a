"""
Source retrieval for URLs embedded in the selected text.

Flow per URL (all URLs in parallel):
1. Blocked domain -> "blocked" record, no network access.
2. Direct GET -> "fetched-direct".
3. GET through the text-extraction proxy -> "fetched-via-proxy".
4. Otherwise -> "failed".

A single source never fails the whole request.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx
from bs4 import BeautifulSoup

from .config import Settings
from .schemas import FactCheckRequest, RetrievedSource

logger = logging.getLogger("fact_checking")

URL_PATTERN = re.compile(r"""https?://[^\s"'<>\])]+""", re.IGNORECASE)
TRAILING_PUNCTUATION = ".,;:)]}"

MAX_SOURCES = 8
TITLE_MAX_CHARS = 180
EXCERPT_MAX_CHARS = 2200

BLOCKED_EXCERPT = "Source retrieval skipped because domain is blocked in extension settings."
FAILED_EXCERPT = "Source retrieval failed. Unable to load content from this link."


@dataclass(frozen=True)
class FetchResult:
    ok: bool
    content: str = ""
    error: str = ""


def extract_urls(text: str) -> list[str]:
    """Absolute http(s) URLs in order of appearance, de-duplicated case-insensitively."""
    seen: set[str] = set()
    urls: list[str] = []
    for match in URL_PATTERN.finditer(text or ""):
        candidate = match.group(0).strip().rstrip(TRAILING_PUNCTUATION)
        url = _absolute_url(candidate)
        if url is None:
            continue
        key = url.lower()
        if key in seen:
            continue
        seen.add(key)
        urls.append(url)
    return urls


def _absolute_url(candidate: str) -> Optional[str]:
    try:
        parts = urlsplit(candidate)
        _ = parts.port  # raises ValueError on a malformed port
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        return None
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, parts.fragment)
    )


def _host(url: str) -> str:
    return urlsplit(url).hostname or url


def normalize_domain(domain: Optional[str]) -> str:
    return (domain or "").strip().lstrip(".").lower()


def is_domain_blocked(host: str, blocked_domains: Iterable[str]) -> bool:
    normalized = normalize_domain(host)
    for blocked in blocked_domains:
        if normalized == blocked or normalized.endswith(f".{blocked}"):
            return True
    return False


def normalize_whitespace(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3].rstrip() + "..."


def looks_like_html(content: str) -> bool:
    lowered = content.lower()
    return "<html" in lowered or "<body" in lowered or "</p>" in lowered


def build_retrieved_source(url: str, raw_content: str, retrieval_status: str) -> RetrievedSource:
    if looks_like_html(raw_content):
        title, excerpt = _extract_from_html(url, raw_content)
    else:
        title, excerpt = _extract_from_text(url, raw_content)
    return RetrievedSource(
        url=url,
        title=truncate(title, TITLE_MAX_CHARS),
        excerpt=truncate(excerpt, EXCERPT_MAX_CHARS),
        retrieval_status=retrieval_status,
    )


def _extract_from_html(url: str, html: str) -> tuple[str, str]:
    soup = BeautifulSoup(html, "html.parser")
    title = normalize_whitespace(soup.title.get_text()) if soup.title else ""

    for tag in soup(["script", "style"]):
        tag.decompose()

    if not title:
        lines = (line.strip() for line in soup.get_text(separator="\n").split("\n"))
        title = next((line for line in lines if line), "")
    excerpt = normalize_whitespace(soup.get_text(separator=" "))
    return title or _host(url), excerpt


def _extract_from_text(url: str, text: str) -> tuple[str, str]:
    # r.jina.ai answers start with "Title: ..."
    first_line = next((line.strip() for line in text.split("\n") if line.strip()), "")
    if first_line.lower().startswith("title:"):
        first_line = first_line[len("title:"):].strip()
    return first_line or _host(url), normalize_whitespace(text)


class SourceRetriever:
    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.settings = settings

    async def retrieve(self, request: FactCheckRequest) -> list[RetrievedSource]:
        preferences = request.user_preferences
        limit = max(1, min(MAX_SOURCES, preferences.max_sources))
        blocked_domains = [d for d in (normalize_domain(x) for x in preferences.blocked_domains) if d]

        urls = extract_urls(request.selected_text)[:limit]
        if not urls:
            logger.info("No URLs in selection; skipping source retrieval")
            return []

        sem = asyncio.Semaphore(max(1, min(limit, self.settings.retrieval_max_concurrency)))

        async def _retrieve_one(url: str) -> RetrievedSource:
            async with sem:
                return await self._retrieve_single(url, blocked_domains)

        sources = await asyncio.gather(*[_retrieve_one(url) for url in urls])
        logger.info(
            "Source retrieval done: urls=%s statuses=%s",
            len(urls),
            [s.retrieval_status for s in sources],
        )
        return list(sources)

    async def _retrieve_single(self, url: str, blocked_domains: list[str]) -> RetrievedSource:
        host = _host(url)
        if is_domain_blocked(host, blocked_domains):
            logger.info("Source %s skipped: domain blocked", url)
            return RetrievedSource(url=url, title=host, excerpt=BLOCKED_EXCERPT, retrieval_status="blocked")

        direct = await self._download(url)
        if direct.ok:
            return build_retrieved_source(url, direct.content, "fetched-direct")

        proxy_url = f"{self.settings.retrieval_proxy_base_url.rstrip('/')}/{url}"
        proxy = await self._download(proxy_url)
        if proxy.ok:
            return build_retrieved_source(url, proxy.content, "fetched-via-proxy")

        logger.info("Failed to retrieve source %s. Direct=%s. Proxy=%s", url, direct.error, proxy.error)
        return RetrievedSource(url=url, title=host, excerpt=FAILED_EXCERPT, retrieval_status="failed")

    async def _download(self, url: str) -> FetchResult:
        try:
            return await asyncio.wait_for(
                self._download_text(url),
                timeout=self.settings.retrieval_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return FetchResult(ok=False, error="timeout")
        except Exception as e:
            logger.debug("Download failed url=%s error=%r", url, e)
            return FetchResult(ok=False, error=str(e) or type(e).__name__)

    async def _download_text(self, url: str) -> FetchResult:
        headers = {
            "User-Agent": self.settings.retrieval_user_agent,
            "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.8",
        }
        max_chars = self.settings.retrieval_max_body_chars
        async with self.client.stream("GET", url, headers=headers, follow_redirects=True) as resp:
            if not resp.is_success:
                return FetchResult(ok=False, error=f"HTTP {resp.status_code}")
            content_type = (resp.headers.get("content-type") or "").lower()
            if "pdf" in content_type:
                return FetchResult(ok=False, error="PDF content is not yet supported")

            parts: list[str] = []
            total = 0
            async for chunk in resp.aiter_text():
                parts.append(chunk)
                total += len(chunk)
                if total >= max_chars:
                    break
            text = "".join(parts)[:max_chars]

        if not text.strip():
            return FetchResult(ok=False, error="empty response")
        return FetchResult(ok=True, content=text)
