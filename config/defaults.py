"""Default pipeline settings."""

DEFAULTS = {
    "model": "claude-sonnet-4-5-20250929",
    "max_tokens": 4096,
    "temperature": 0.7,
    "llm_timeout": 120,
    "llm_retry_delay": 2,

    # Search
    "http_timeout": 10,
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "results_per_provider": 5,
    "cache_similarity_threshold": 0.7,
    "enhance_top_k": 5,
    "max_workers": 4,

    # Persisted documents
    "research_cache_path": "research-cache.json",
    "knowledge_base_path": "knowledge-base.json",
    "knowledge_base_limit": 100,

    # Optimizer
    "coverage_base": 60,
    "coverage_cap": 95,
    "coverage_warn_below": 80,
    "large_component_chars": 500,

    # Deploy
    "deploy_timeout": 120,
    "aws_region": "us-east-1",
}
