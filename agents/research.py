"""Research agent — keywords, web search, summary. Always returns a usable summary."""

import dataclasses
import json
import logging
from concurrent.futures import ThreadPoolExecutor

from agents.extractor import extract_features, extract_tech_stack, rank
from agents.search import SearchChain
from config.defaults import DEFAULTS
from core.cache import JsonFileCacheStore, KnowledgeBase
from core.errors import ParseError, PipelineError
from core.state import PipelineState, ResearchSummary, clamp_relevance, to_dict
from utils.llm import default_client, parse_structured_payload

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = ResearchSummary(
    insights=("Research completed successfully",),
    recommended_stack=("React", "TypeScript", "Tailwind CSS"),
    design_patterns=("Component-based architecture", "Responsive design"),
    code_examples=("Modern React patterns", "TypeScript interfaces"),
    best_practices=("Code organization", "Error handling"),
    potential_issues=("Performance optimization", "Accessibility"),
)

# ResearchSummary field -> keys accepted in the model's JSON reply
_SUMMARY_KEYS = {
    "insights": ("overallInsights", "insights", "overall_insights"),
    "recommended_stack": ("recommendedTechStack", "recommendedStack", "recommended_stack"),
    "design_patterns": ("designPatterns", "design_patterns"),
    "code_examples": ("codeExamples", "code_examples"),
    "best_practices": ("bestPractices", "best_practices"),
    "potential_issues": ("potentialIssues", "potential_issues"),
}

_KEYWORD_PROMPT = """Extract relevant research keywords from this app request:

User Prompt: "{prompt}"
App Plan: {plan}

Extract keywords that would be useful for finding similar apps and their
implementations, researching best practices, finding code examples and
understanding user expectations.

Return a JSON array of keywords:
["keyword1", "keyword2", "keyword3"]"""

_SUMMARY_PROMPT = """Analyze these research results and provide insights for app development:

Original Prompt: "{prompt}"

Research Results:
{results}

Respond in this JSON format:
{{
  "overallInsights": ["insight1", "insight2"],
  "recommendedTechStack": ["tech1", "tech2"],
  "designPatterns": ["pattern1", "pattern2"],
  "codeExamples": ["example1", "example2"],
  "bestPractices": ["practice1", "practice2"],
  "potentialIssues": ["issue1", "issue2"]
}}"""

_TOPIC_PROMPT = """Analyze this search result for the topic "{topic}":

Title: {title}
Content: {content}
URL: {url}

Respond in JSON format:
{{
  "insights": ["insight1", "insight2"],
  "codePatterns": ["pattern1", "pattern2"],
  "uiPatterns": ["uiPattern1", "uiPattern2"]
}}"""

_SIMILAR_PROMPT = """Analyze this app for similarity to: "{topic}"

App: {title}
Description: {content}
URL: {url}

Respond in JSON format:
{{
  "similarity": 0.8,
  "learnings": ["learning1", "learning2"],
  "features": ["feature1", "feature2"],
  "techStack": ["tech1", "tech2"]
}}"""

RESEARCH_QUERIES = ("app examples", "best practices", "code examples", "tutorial guide")
SIMILAR_APP_QUERIES = ('"{0}" similar apps', '"{0}" alternatives', 'apps like "{0}"', '"{0}" competitors')
COMPETITORS_ANALYZED = 3
COMPETITOR_TRAITS_MAX = 10


def fallback_keywords(prompt):
    """Prompt tokens longer than 3 characters, lower-cased, first 5."""
    return [word for word in prompt.lower().split() if len(word) > 3][:5]


def _strings(value):
    if not isinstance(value, list):
        return None
    return tuple(str(v) for v in value if isinstance(v, (str, int, float)) and str(v).strip())


def summary_from_payload(payload):
    """Build a ResearchSummary; missing fields take the default summary's values."""
    if not isinstance(payload, dict):
        raise ParseError("Research summary is not a JSON object")
    fields = {}
    for field_name, keys in _SUMMARY_KEYS.items():
        value = next((_strings(payload[k]) for k in keys if k in payload), None)
        if value is not None:
            fields[field_name] = value
    if not fields:
        raise ParseError("Research summary has none of the expected fields")
    return dataclasses.replace(DEFAULT_SUMMARY, **fields)


class ResearchAgent:
    """Produces a ResearchSummary for a prompt. Never raises."""

    name = "research"

    def __init__(self, llm=None, search=None, knowledge_base=None, max_workers=None, top_k=None):
        self.llm = llm or default_client()
        self.search = search or SearchChain(cache=JsonFileCacheStore(), llm=self.llm)
        self.knowledge_base = knowledge_base or KnowledgeBase()
        self.max_workers = max_workers or DEFAULTS["max_workers"]
        self.top_k = top_k or DEFAULTS["enhance_top_k"]

    def run(self, state: PipelineState) -> PipelineState:
        state.status = "researching"
        state.research = self._research(state.request.prompt, None, state.logs)
        return state

    def research(self, prompt, plan=None):
        return self._research(prompt, plan, [])

    def _research(self, prompt, plan, notes):
        try:
            keywords = self._extract_keywords(prompt, plan, notes)
            results = self.search.search(keywords)
            if not results:
                notes.append("Research: no search results available")
            return self._summarize(prompt, results, notes)
        except Exception:
            logger.exception("Research failed unexpectedly; using default summary")
            notes.append("Research: unexpected failure, using default summary")
            return DEFAULT_SUMMARY

    def _extract_keywords(self, prompt, plan, notes):
        plan_text = json.dumps(to_dict(plan), indent=2) if plan is not None else "Not available"
        try:
            text = self.llm.generate(_KEYWORD_PROMPT.format(prompt=prompt, plan=plan_text),
                                     max_tokens=500, temperature=0.3)
        except PipelineError as e:
            notes.append(f"Research: keyword extraction failed ({e}); using prompt words")
            return fallback_keywords(prompt)

        parsed = parse_structured_payload(text, kind="array")
        if not parsed.ok:
            notes.append("Research: keyword reply unparseable; using prompt words")
            return fallback_keywords(prompt)
        keywords = [str(k).strip() for k in parsed.value if isinstance(k, str) and k.strip()]
        return keywords or fallback_keywords(prompt)

    def _summarize(self, prompt, results, notes):
        payload = json.dumps([to_dict(r) for r in results], indent=2, default=list)
        try:
            text = self.llm.generate(_SUMMARY_PROMPT.format(prompt=prompt, results=payload),
                                     max_tokens=2000, temperature=0.5)
        except PipelineError as e:
            notes.append(f"Research: summary generation failed ({e}); using default summary")
            return DEFAULT_SUMMARY

        parsed = parse_structured_payload(text, kind="object")
        if not parsed.ok:
            notes.append("Research: summary reply unparseable; using default summary")
            return DEFAULT_SUMMARY
        try:
            return summary_from_payload(parsed.value)
        except ParseError as e:
            notes.append(f"Research: {e}; using default summary")
            return DEFAULT_SUMMARY

    # ------------------------------------------------------------------
    # Fan-out research helpers
    # ------------------------------------------------------------------

    def research_app(self, prompt):
        """Four independent searches issued concurrently. Returns {query_kind: results}."""
        queries = [f"{prompt} {suffix}".split() for suffix in RESEARCH_QUERIES]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            answers = list(pool.map(self.search.search, queries))
        return {
            "similar_apps": answers[0],
            "best_practices": answers[1],
            "code_examples": answers[2],
            "tutorials": answers[3],
        }

    def research_topic(self, topic):
        """Search one topic, then enrich the top-K results concurrently."""
        results = self.search.search([topic])
        head, tail = results[:self.top_k], results[self.top_k:]
        enhanced = self._enhance_all(head, topic, _TOPIC_PROMPT, self._apply_topic_analysis)
        return enhanced + tail

    def similar_apps(self, description):
        """Four "similar apps" queries concurrently, de-duplicated by URL, top-K enriched."""
        queries = [[q.format(description)] for q in SIMILAR_APP_QUERIES]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            answers = list(pool.map(self.search.search, queries))

        seen = set()
        unique = []
        for results in answers:
            for result in results:
                if result.url not in seen:
                    seen.add(result.url)
                    unique.append(result)

        top = rank(unique)[:self.top_k]
        return self._enhance_all(top, description, _SIMILAR_PROMPT, self._apply_similarity_analysis)

    def analyze_competitors(self, description):
        """Features and technologies mentioned by the top competitor results.

        Returns {"competitors": [...], "features": [...], "tech_stack": [...]};
        the two lists are de-duplicated in first-seen order and capped.
        """
        competitors = self.search.search([f'"{description}"', "competitors", "alternatives"])
        features, tech = [], []
        for result in competitors[:COMPETITORS_ANALYZED]:
            features.extend(extract_features(result.content))
            tech.extend(extract_tech_stack(result.content))
        return {
            "competitors": competitors,
            "features": list(dict.fromkeys(features))[:COMPETITOR_TRAITS_MAX],
            "tech_stack": list(dict.fromkeys(tech))[:COMPETITOR_TRAITS_MAX],
        }

    def _enhance_all(self, results, topic, template, apply):
        if not results:
            return []
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(lambda r: self._enhance(r, topic, template, apply), results))

    def _enhance(self, result, topic, template, apply):
        prompt = template.format(topic=topic, title=result.title, content=result.content, url=result.url)
        try:
            text = self.llm.generate(prompt, max_tokens=800, temperature=0.3)
        except PipelineError as e:
            logger.warning("Enhancement failed for %s: %s", result.url, e)
            return result
        parsed = parse_structured_payload(text, kind="object")
        if not parsed.ok:
            return result
        return apply(result, parsed.value)

    @staticmethod
    def _apply_topic_analysis(result, analysis):
        return dataclasses.replace(
            result,
            insights=_strings(analysis.get("insights")) or result.insights,
            code_patterns=_strings(analysis.get("codePatterns")) or result.code_patterns,
            ui_patterns=_strings(analysis.get("uiPatterns")) or result.ui_patterns,
        )

    @staticmethod
    def _apply_similarity_analysis(result, analysis):
        similarity = analysis.get("similarity")
        relevance = clamp_relevance(similarity) if isinstance(similarity, (int, float)) else result.relevance
        return dataclasses.replace(
            result,
            relevance=relevance,
            insights=_strings(analysis.get("learnings")) or result.insights,
            code_patterns=_strings(analysis.get("techStack")) or result.code_patterns,
            ui_patterns=_strings(analysis.get("features")) or result.ui_patterns,
        )

    def update_knowledge_base(self, insights):
        """Append insights to the knowledge base. Returns False if the write failed."""
        try:
            self.knowledge_base.append(insights)
        except OSError as e:
            logger.error("Knowledge base update failed: %s", e)
            return False
        return True
