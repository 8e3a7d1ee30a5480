"""Search-result scraping and page-text extraction behind /api/tools/*."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, quote_plus, urlparse

import aiohttp
from bs4 import BeautifulSoup


SEARCH_ENDPOINT = "https://html.duckduckgo.com/html/?q={query}"
MAX_RESULTS = 6
MAX_CONTENT_CHARS = 15000
FETCH_TIMEOUT = 10.0

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_NOISE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside"]


def parse_search_results(html: str, limit: int = MAX_RESULTS) -> list[dict[str, str]]:
    """Pull title/snippet/url triples out of a DuckDuckGo HTML results page."""
    soup = BeautifulSoup(html, "html.parser")
    titles = soup.select("a.result__a")
    snippets = soup.select(".result__snippet")

    results = []
    for i, anchor in enumerate(titles):
        if len(results) >= limit:
            break
        title = anchor.get_text(" ", strip=True)
        url = _unwrap_redirect(anchor.get("href", ""))
        snippet = snippets[i].get_text(" ", strip=True) if i < len(snippets) else ""
        if title and url and "duckduckgo.com" not in url:
            results.append({"title": title, "snippet": snippet, "url": url})
    return results


def extract_page_content(html: str, max_chars: int = MAX_CONTENT_CHARS) -> dict:
    """Return the page title, whitespace-collapsed body text and word count."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    root = soup.body or soup
    text = re.sub(r"\s+", " ", root.get_text(" ")).strip()
    return {
        "title": title,
        "content": text[:max_chars],
        "wordCount": len(text.split()),
    }


async def search_web(query: str, timeout: float = FETCH_TIMEOUT) -> dict:
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.get(
            SEARCH_ENDPOINT.format(query=quote_plus(query)),
            headers=BROWSER_HEADERS,
        ) as resp:
            if resp.status >= 400:
                raise RuntimeError(f"Search failed: {resp.status}")
            html = await resp.text()
    results = parse_search_results(html)
    return {"query": query, "resultCount": len(results), "results": results}


async def outline_page(url: str, timeout: float = FETCH_TIMEOUT) -> dict:
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.get(url, headers=BROWSER_HEADERS) as resp:
            if resp.status >= 400:
                raise RuntimeError(f"Failed to fetch page: {resp.status}")
            html = await resp.text()
    return {"url": url, **extract_page_content(html)}


def _unwrap_redirect(href: str) -> str:
    # Result links point at a redirector carrying the target in uddg=
    if "uddg=" not in href:
        return href
    target = parse_qs(urlparse(href).query).get("uddg")
    return target[0] if target else href
