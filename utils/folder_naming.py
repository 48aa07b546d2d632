"""Folder and project naming: slugs, per-platform output dirs, dedup."""

import os
import re

PLATFORM_DIRS = {
    "web": "web_apps",
    "mobile": "mobile_apps",
    "desktop": "desktop_apps",
    "ar": "ar_apps",
}

MAX_DEDUP = 1000


def slugify(text, sep="_"):
    """Convert text to a filesystem-safe slug."""
    text = text.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_-]+", sep, text)
    return text.strip(sep)


def extract_project_name(prompt, sep="_"):
    """Pull a short project name from the request text."""
    filler = {
        "build", "me", "a", "an", "the", "create", "make", "generate",
        "write", "for", "to", "with", "using", "that", "and", "app",
        "application", "please", "can", "you", "i", "want", "need", "some", "new",
    }
    words = re.sub(r"[^\w\s]", "", prompt.lower()).split()
    meaningful = [w for w in words if w not in filler]
    name = sep.join(meaningful[:3]) if meaningful else "project"
    return slugify(name, sep)


def _check_containment(path, base_dir):
    """Verify the resolved path stays within base_dir."""
    resolved = os.path.realpath(path)
    if not resolved.startswith(os.path.realpath(base_dir) + os.sep):
        raise ValueError(f"Generated output path escapes base directory: {path}")
    return resolved


def get_output_dir(platform, prompt, base_dir="generated"):
    """Return a deduplicated output directory for the given platform and prompt."""
    platform_dir = PLATFORM_DIRS.get(platform, "apps")
    project_name = extract_project_name(prompt)
    base = os.path.join(base_dir, platform_dir, project_name)
    _check_containment(base, base_dir)

    if not os.path.exists(base):
        return base

    for counter in range(2, MAX_DEDUP + 2):
        candidate = f"{base}_{counter}"
        if not os.path.exists(candidate):
            return candidate

    raise RuntimeError(f"Too many duplicate projects (>{MAX_DEDUP}) for: {project_name}")
