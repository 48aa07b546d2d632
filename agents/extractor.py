"""Content extractor: relevance, insight phrases and pattern tags from a snippet. No I/O."""

import re

from core.state import SearchResult

INSIGHT_PATTERNS = [
    re.compile(r"\buse\s+[A-Za-z ]{1,40}?\s+for\s+[A-Za-z ]{1,40}", re.IGNORECASE),
    re.compile(r"\bimplement\s+[A-Za-z ]{1,40}", re.IGNORECASE),
    re.compile(r"\bbest\s+practices?\s*:?\s*[A-Za-z ,]{1,60}", re.IGNORECASE),
    re.compile(r"\brecommend\s+[A-Za-z ]{1,40}", re.IGNORECASE),
]

CODE_PATTERNS = [
    re.compile(r"\b(?:useState|useEffect|useContext|useReducer)\b", re.IGNORECASE),
    re.compile(r"\b(?:component|hook|function|class)\b", re.IGNORECASE),
    re.compile(r"\b(?:props|state|context|reducer)\b", re.IGNORECASE),
    re.compile(r"\b(?:async|await|promise|fetch)\b", re.IGNORECASE),
]

UI_PATTERNS = [
    re.compile(r"\b(?:responsive|mobile|desktop|tablet)\b", re.IGNORECASE),
    re.compile(r"\b(?:layout|grid|flexbox|css)\b", re.IGNORECASE),
    re.compile(r"\b(?:modal|dialog|popup|overlay)\b", re.IGNORECASE),
    re.compile(r"\b(?:navigation|menu|sidebar|header)\b", re.IGNORECASE),
    re.compile(r"\b(?:button|input|form|card)\b", re.IGNORECASE),
]

# (label, pattern) pairs for competitor/page analysis
FEATURE_PATTERNS = [
    ("user authentication", re.compile(r"user authentication", re.IGNORECASE)),
    ("real-time", re.compile(r"real-time", re.IGNORECASE)),
    ("mobile responsive", re.compile(r"mobile responsive", re.IGNORECASE)),
    ("dashboard", re.compile(r"dashboard", re.IGNORECASE)),
    ("analytics", re.compile(r"analytics", re.IGNORECASE)),
    ("notifications", re.compile(r"notifications", re.IGNORECASE)),
    ("search", re.compile(r"\bsearch\b", re.IGNORECASE)),
    ("filters", re.compile(r"\bfilters\b", re.IGNORECASE)),
    ("export", re.compile(r"\bexport\b", re.IGNORECASE)),
    ("import", re.compile(r"\bimport\b", re.IGNORECASE)),
]

TECH_PATTERNS = [
    ("react", re.compile(r"\breact\b", re.IGNORECASE)),
    ("vue", re.compile(r"\bvue\b", re.IGNORECASE)),
    ("angular", re.compile(r"\bangular\b", re.IGNORECASE)),
    ("node.js", re.compile(r"\bnode\.js\b", re.IGNORECASE)),
    ("python", re.compile(r"\bpython\b", re.IGNORECASE)),
    ("typescript", re.compile(r"\btypescript\b", re.IGNORECASE)),
    ("javascript", re.compile(r"\bjavascript\b", re.IGNORECASE)),
    ("postgresql", re.compile(r"\bpostgresql\b", re.IGNORECASE)),
    ("mongodb", re.compile(r"\bmongodb\b", re.IGNORECASE)),
    ("aws", re.compile(r"\baws\b", re.IGNORECASE)),
    ("vercel", re.compile(r"\bvercel\b", re.IGNORECASE)),
    ("netlify", re.compile(r"\bnetlify\b", re.IGNORECASE)),
]

MAX_INSIGHTS = 3
MAX_PATTERNS = 5


def _unique(items):
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def calculate_relevance(content, keywords):
    """0.1 per keyword occurrence (case-insensitive), capped at 1.0."""
    text = (content or "").lower()
    score = 0.0
    for keyword in keywords:
        keyword = keyword.strip().lower()
        if not keyword:
            continue
        score += 0.1 * text.count(keyword)
    return min(1.0, score)


def extract_insights(content):
    insights = []
    for pattern in INSIGHT_PATTERNS:
        insights.extend(m.group(0).strip() for m in pattern.finditer(content or ""))
    return _unique(insights)[:MAX_INSIGHTS]


def _extract_tags(content, patterns):
    tags = []
    for pattern in patterns:
        tags.extend(m.group(0).lower() for m in pattern.finditer(content or ""))
    return _unique(tags)[:MAX_PATTERNS]


def extract_code_patterns(content):
    return _extract_tags(content, CODE_PATTERNS)


def extract_ui_patterns(content):
    return _extract_tags(content, UI_PATTERNS)


def extract_features(content):
    return [label for label, pattern in FEATURE_PATTERNS if pattern.search(content or "")]


def extract_tech_stack(content):
    return [label for label, pattern in TECH_PATTERNS if pattern.search(content or "")]


def build_result(url, title, content, keywords):
    """Assemble a SearchResult with every derived field filled in."""
    if url.startswith("//"):
        url = "https:" + url
    return SearchResult(
        url=url,
        title=title,
        content=content,
        relevance=calculate_relevance(content, keywords),
        insights=extract_insights(content),
        code_patterns=extract_code_patterns(content),
        ui_patterns=extract_ui_patterns(content),
    )


def rank(results):
    """Sort by relevance, highest first; ties keep provider order."""
    return sorted(results, key=lambda r: r.relevance, reverse=True)
