"""Search fallback chain — HTML search providers, similarity cache, LLM knowledge fallback."""

import logging
from urllib.parse import quote_plus

import requests
from bs4 import BeautifulSoup

from agents.extractor import (
    build_result,
    calculate_relevance,
    extract_code_patterns,
    extract_insights,
    extract_ui_patterns,
    rank,
)
from config.defaults import DEFAULTS
from core.errors import ProviderError, TransportError
from core.fallback import first_success
from core.state import SearchResult, to_dict
from utils.llm import parse_structured_payload

logger = logging.getLogger(__name__)

_KNOWLEDGE_PROMPT = """Based on your knowledge, provide research results for these keywords: {keywords}

Generate 3-5 results with realistic titles and URLs, relevant content snippets,
practical insights, code patterns and UI patterns.

Respond with a JSON array:
[
  {{
    "url": "https://example.com/realistic-url",
    "title": "Realistic Title",
    "content": "Realistic content snippet...",
    "insights": ["insight1", "insight2"],
    "codePatterns": ["pattern1", "pattern2"],
    "uiPatterns": ["uiPattern1", "uiPattern2"]
  }}
]"""


class _HtmlSearchProvider:
    """One search engine results page, scraped with CSS selectors."""

    def __init__(self, name, url_template, result_selector, title_selector,
                 snippet_selector, link_selector=None):
        self.name = name
        self.url_template = url_template
        self.result_selector = result_selector
        self.title_selector = title_selector
        self.snippet_selector = snippet_selector
        self.link_selector = link_selector or title_selector

    def fetch(self, query):
        url = self.url_template.format(query=quote_plus(query))
        try:
            response = requests.get(
                url,
                headers={"User-Agent": DEFAULTS["user_agent"]},
                timeout=DEFAULTS["http_timeout"],
            )
        except requests.RequestException as e:
            raise TransportError(f"{self.name} request failed: {e}") from e
        if response.status_code >= 400:
            raise ProviderError(f"{self.name} returned HTTP {response.status_code}")
        return response.text

    def parse(self, html, keywords, limit):
        soup = BeautifulSoup(html, "html.parser")
        results = []
        for element in soup.select(self.result_selector):
            if len(results) >= limit:
                break
            title_el = element.select_one(self.title_selector)
            link_el = element.select_one(self.link_selector)
            snippet_el = element.select_one(self.snippet_selector)
            title = title_el.get_text(" ", strip=True) if title_el else ""
            href = link_el.get("href") if link_el else None
            snippet = snippet_el.get_text(" ", strip=True) if snippet_el else ""
            if not (title and href and snippet):
                continue
            results.append(build_result(href, title, snippet, keywords))
        return results

    def search(self, keywords, limit):
        query = " ".join(keywords)
        return self.parse(self.fetch(query), keywords, limit)


PRIMARY_PROVIDER = _HtmlSearchProvider(
    "duckduckgo",
    "https://html.duckduckgo.com/html/?q={query}",
    ".result", ".result__title a", ".result__snippet",
)

ALTERNATIVE_PROVIDERS = [
    _HtmlSearchProvider(
        "bing",
        "https://www.bing.com/search?q={query}",
        ".b_algo", "h2 a", ".b_caption p",
    ),
    _HtmlSearchProvider(
        "startpage",
        "https://www.startpage.com/sp/search?query={query}",
        ".result, .w-gl__result", "h3, h2, .title, .result-title", ".snippet, .description, .w-gl__description",
        link_selector="a",
    ),
    _HtmlSearchProvider(
        "yahoo",
        "https://search.yahoo.com/search?p={query}",
        ".result, .algo, .search-result", "h3, h2, .title", ".compText, .snippet, .description",
        link_selector="a",
    ),
    _HtmlSearchProvider(
        "ecosia",
        "https://www.ecosia.org/search?q={query}",
        ".result, .web-result, .search-result", "h3, h2, .result-title", ".result-snippet, .snippet, .description",
        link_selector="a",
    ),
]


def query_similarity(query1, query2):
    """Jaccard similarity of the two queries' whitespace tokens (case-insensitive)."""
    words1 = set(query1.lower().split())
    words2 = set(query2.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def _as_strings(value):
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    return []


def result_from_payload(item, keywords):
    """SearchResult from a cached or model-synthesized dict. Relevance is recomputed."""
    if not isinstance(item, dict):
        return None
    url = str(item.get("url") or "")
    title = str(item.get("title") or "")
    content = str(item.get("content") or "")
    if not (url and title and content):
        return None
    return SearchResult(
        url=url,
        title=title,
        content=content,
        relevance=calculate_relevance(content, keywords),
        insights=_as_strings(item.get("insights")) or extract_insights(content),
        code_patterns=(_as_strings(item.get("code_patterns") or item.get("codePatterns"))
                       or extract_code_patterns(content)),
        ui_patterns=(_as_strings(item.get("ui_patterns") or item.get("uiPatterns"))
                     or extract_ui_patterns(content)),
    )


class SearchChain:
    """Resolve keywords to ranked results: primary → alternatives → cache → LLM knowledge.

    Every strategy is caught independently. When all four come back empty the
    chain returns an empty list; it never raises.
    """

    def __init__(self, cache=None, llm=None, primary=None, alternatives=None,
                 similarity_threshold=None, limit=None):
        self.cache = cache
        self.llm = llm
        self.primary = primary or PRIMARY_PROVIDER
        self.alternatives = ALTERNATIVE_PROVIDERS if alternatives is None else alternatives
        self.similarity_threshold = (
            DEFAULTS["cache_similarity_threshold"] if similarity_threshold is None
            else similarity_threshold
        )
        self.limit = limit or DEFAULTS["results_per_provider"]

    def search(self, keywords):
        keywords = [k for k in (str(k).strip() for k in keywords) if k]
        if not keywords:
            return []

        strategies = [
            ("primary", lambda: self.primary.search(keywords, self.limit)),
            ("alternatives", lambda: self._search_alternatives(keywords)),
            ("cache", lambda: self._search_cache(keywords)),
            ("knowledge", lambda: self._search_knowledge(keywords)),
        ]
        winner, results = first_success(strategies, default=[])

        if winner is None:
            logger.warning("All search strategies failed for %r", " ".join(keywords))
            return []

        logger.info("Search for %r answered by %s (%d results)", " ".join(keywords), winner, len(results))
        if winner in ("primary", "alternatives"):
            self._remember(keywords, results)
        return rank(results)

    def _search_alternatives(self, keywords):
        strategies = [
            (provider.name, lambda provider=provider: provider.search(keywords, self.limit))
            for provider in self.alternatives
        ]
        _, results = first_success(strategies, default=[])
        return results

    def _search_cache(self, keywords):
        if self.cache is None:
            return []
        query = " ".join(keywords).lower()
        best_score, best = 0.0, None
        for cached_query, payload in self.cache.items():
            score = query_similarity(query, cached_query)
            if score > self.similarity_threshold and score > best_score:
                best_score, best = score, payload
        if not best:
            return []
        logger.info("Using cached results (similarity %.2f)", best_score)
        results = (result_from_payload(item, keywords) for item in best)
        return [r for r in results if r is not None]

    def _search_knowledge(self, keywords):
        if self.llm is None:
            return []
        text = self.llm.generate(_KNOWLEDGE_PROMPT.format(keywords=", ".join(keywords)),
                                 max_tokens=2000, temperature=0.5)
        parsed = parse_structured_payload(text, kind="array")
        if not parsed.ok:
            logger.warning("Knowledge fallback unparseable: %s", parsed.error)
            return []
        results = (result_from_payload(item, keywords) for item in parsed.value)
        return [r for r in results if r is not None]

    def _remember(self, keywords, results):
        if self.cache is None or not results:
            return
        try:
            self.cache.put(" ".join(keywords).lower(), [to_dict(r) for r in results])
        except OSError as e:
            logger.warning("Could not write research cache: %s", e)
