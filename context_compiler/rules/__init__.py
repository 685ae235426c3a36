from context_compiler.rules.models import Rule, RuleFrontmatter
from context_compiler.rules.parser import (
    infer_globs,
    parse_all_rules,
    parse_rule,
    parse_rule_text,
)
from context_compiler.rules.repository import ContextRepository

__all__ = [
    "ContextRepository",
    "Rule",
    "RuleFrontmatter",
    "infer_globs",
    "parse_all_rules",
    "parse_rule",
    "parse_rule_text",
]
