"""MCP tool definitions for contextkeeper."""

TOOL_DEFINITIONS = [
    {
        "name": "fetch_context",
        "description": (
            "Fetch relevant archived context for the current task. Returns previously"
            " extracted problems, solutions, implementations and decisions."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query or description of needed context",
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of results",
                    "default": 5,
                    "minimum": 1,
                    "maximum": 100,
                },
                "scope": {
                    "type": "string",
                    "enum": ["session", "project", "global"],
                    "description": "Search scope",
                    "default": "project",
                },
                "min_relevance": {
                    "type": "number",
                    "description": "Minimum relevance score (0-1)",
                    "default": 0.3,
                    "minimum": 0,
                    "maximum": 1,
                },
                "session_id": {
                    "type": "string",
                    "description": "Session to read when scope is 'session'",
                },
            },
        },
    },
    {
        "name": "search_archive",
        "description": (
            "Search archived context with filters. Find specific implementations,"
            " errors, or decisions."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query",
                },
                "file_pattern": {
                    "type": "string",
                    "description": 'Glob over modified files (e.g. "*.ts", "src/**/*.py")',
                },
                "date_range": {
                    "type": "object",
                    "properties": {
                        "from": {"type": "string", "format": "date"},
                        "to": {"type": "string", "format": "date"},
                    },
                    "description": "Inclusive date range",
                },
                "project_path": {
                    "type": "string",
                    "description": "Only contexts whose project path contains this",
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum results",
                    "default": 10,
                    "minimum": 1,
                    "maximum": 100,
                },
                "sort_by": {
                    "type": "string",
                    "enum": ["relevance", "date", "frequency"],
                    "default": "relevance",
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": "get_patterns",
        "description": "Recurring commands, edits and error classes across archived sessions.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "enum": ["code", "command", "architecture", "error-handling", "all"],
                    "default": "all",
                },
                "min_frequency": {
                    "type": "integer",
                    "description": "Minimum occurrence count",
                    "default": 2,
                    "minimum": 1,
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum patterns to return",
                    "default": 10,
                    "minimum": 1,
                    "maximum": 50,
                },
            },
        },
    },
    {
        "name": "get_recent_contexts",
        "description": "Most recently archived sessions across all projects.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "default": 10,
                    "minimum": 1,
                    "maximum": 100,
                },
            },
        },
    },
    {
        "name": "auto_load_context",
        "description": "Size-bounded summary of this project's recent work, patterns and decisions.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "strategy": {
                    "type": "string",
                    "enum": ["disabled", "recent", "relevant", "smart", "custom"],
                },
                "max_size_kb": {
                    "type": "number",
                    "exclusiveMinimum": 0,
                },
                "priority_keywords": {
                    "type": "array",
                    "items": {"type": "string"},
                },
            },
        },
    },
]
