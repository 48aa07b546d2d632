"""Default tech stack per target platform, used when the planner has no LLM answer."""

STACKS = {
    "web": {
        "frontend": "React + TypeScript + Tailwind CSS",
        "backend": "Node.js + Express",
        "database": "PostgreSQL",
        "deployment": "Vercel",
    },
    "mobile": {
        "frontend": "React Native + TypeScript",
        "backend": "Node.js + Express",
        "database": "PostgreSQL",
        "deployment": "Railway",
    },
    "desktop": {
        "frontend": "Electron + React + TypeScript",
        "backend": "Node.js",
        "database": "SQLite",
        "deployment": "Netlify",
    },
    "ar": {
        "frontend": "React + Three.js + WebXR",
        "backend": "Node.js + Express",
        "database": "PostgreSQL",
        "deployment": "Vercel",
    },
}

PLATFORMS = tuple(STACKS)

# Deploy provider that fits each platform best (used by the CLI when --deploy is bare)
PLATFORM_TO_PROVIDER = {
    "web": "vercel",
    "mobile": "railway",
    "desktop": "netlify",
    "ar": "vercel",
}
