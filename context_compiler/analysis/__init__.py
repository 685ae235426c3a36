from context_compiler.analysis.validator import (
    ValidationReport,
    analyze_rules,
    find_circular_references,
    find_dead_links,
    find_duplicate_ids,
    find_ghost_rule,
    issue_from_parse_error,
)

__all__ = [
    "ValidationReport",
    "analyze_rules",
    "find_circular_references",
    "find_dead_links",
    "find_duplicate_ids",
    "find_ghost_rule",
    "issue_from_parse_error",
]
