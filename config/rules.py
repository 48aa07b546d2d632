"""Lint rules, score penalties and rewrite patterns used by the optimizer."""

import re

# Line-level lint rules. Each entry:
# (pattern_regex, severity, message)
# The column reported is the start of the first match on the line.
LINT_RULES = [
    (
        re.compile(r"""\bconsole\.(?:log|debug|trace)\s*\("""),
        "warning",
        "Remove console.log statements in production code",
    ),
    (
        re.compile(r"""^\s*debugger\s*;?\s*$"""),
        "warning",
        "Remove debugger statements",
    ),
    (
        re.compile(r"""^\s*print\s*\("""),
        "warning",
        "Remove print() debugging in production code",
    ),
    (
        re.compile(r"""\b(?:TODO|FIXME)\b"""),
        "info",
        "Address TODO/FIXME comments",
    ),
]

# `import { a, b as c } from "x"`; group 1 is the binding list
NAMED_IMPORT_RE = re.compile(r"""^\s*import\s+(?:type\s+)?\{([^}]*)\}\s*from\s*["'][^"']+["'];?\s*$""")

# Python-style `from x import a, b`
FROM_IMPORT_RE = re.compile(r"""^\s*from\s+[\w.]+\s+import\s+([\w\s,]+?)\s*$""")

# Score penalties. Each entry:
# (score, scope, requires, forbids, weight, message)
#   score:    "performance" | "security" | "maintainability"
#   scope:    "components" | "routes" | "all"
#   requires: pattern that must match for the penalty to apply (None = always)
#   forbids:  pattern whose match cancels the penalty (None = never cancelled)
# Weights are applied once per file in scope.
SCORE_PENALTIES = [
    # performance
    ("performance", "components", re.compile(r"""\bconsole\.log\s*\("""), None, 5,
     "console.log left in component"),
    ("performance", "components", re.compile(r"""\buseEffect\s*\("""), re.compile(r"""\[\s*\]"""), 10,
     "useEffect without an empty dependency list"),
    ("performance", "components", None, re.compile(r"""\bReact\.memo\s*\("""), 5,
     "component is not memoized"),
    # security
    ("security", "all", re.compile(r"""\beval\s*\("""), None, 50,
     "unsafe dynamic evaluation (eval)"),
    ("security", "all", re.compile(r"""\binnerHTML\b|dangerouslySetInnerHTML"""), None, 20,
     "unescaped HTML injection"),
    ("security", "routes", None, re.compile(r"""validat""", re.IGNORECASE), 15,
     "missing input validation"),
    ("security", "routes", None, re.compile(r"""\bcors\b"""), 10,
     "missing CORS configuration"),
    # maintainability
    ("maintainability", "components", None, re.compile(r"""\binterface\s+\w+"""), 10,
     "no typed props interface"),
    ("maintainability", "components", re.compile(r""":\s*any\b|<any>|\bas\s+any\b"""), None, 5,
     "uses the `any` type"),
]

# Coverage heuristic tokens
TEST_TOKENS = re.compile(r"""\b(?:test|spec|describe|expect|it\()""")
ERROR_HANDLING_TOKENS = re.compile(r"""\b(?:try|catch|except|error)\b""", re.IGNORECASE)
VALIDATION_TOKENS = re.compile(r"""\b(?:validate\w*|check\w*|schema)\b""", re.IGNORECASE)

# Rewrite patterns
DEFAULT_EXPORT_IDENT_RE = re.compile(r"""^export[ \t]+default[ \t]+([A-Za-z_$][\w$]*)[ \t]*;?[ \t]*$""", re.MULTILINE)
DEFAULT_EXPORT_FUNC_RE = re.compile(r"""^export\s+default\s+function\s+([A-Za-z_$][\w$]*)""", re.MULTILINE)
IMG_WITHOUT_LOADING_RE = re.compile(r"""<img\b(?![^>]*\bloading\s*=)""")
EXPRESS_JSON_RE = re.compile(r"""^([ \t]*)app\.use\(express\.json\(\)\);?""", re.MULTILINE)
RES_JSON_RE = re.compile(r"""^([ \t]*)(.*)\bres\.json\(""", re.MULTILINE)
REQ_BODY_RE = re.compile(r"""\breq\.body\b""")
ROUTER_DECL_RE = re.compile(r"""^([ \t]*)(?:const|let)\s+router\s*=\s*(?:express\.)?Router\(\)\s*;?[ \t]*$""", re.MULTILINE)
PROPS_RE = re.compile(r"""\bprops\b""")
INTERFACE_RE = re.compile(r"""\binterface\s+\w+""")
