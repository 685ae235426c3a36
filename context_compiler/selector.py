"""Rule selection for a compilation target.

Each target picks one strategy (``directory``, ``glob``, ``tag``,
``priority`` or ``all``). Filtering is followed by a single ordering step
(priority descending, id ascending) and, when a budget is given, greedy
admission in that order until the first rule that no longer fits.

Rules with ``always_apply`` set bypass filtering and budgeting. They come
first in every selection and their tokens are reserved out of the effective
budget. The rest is charged greedily in this order:

1. candidates named in ``always_include`` (selection-policy allowlist)
2. every remaining candidate in sorted order

The tokens admitted this way never exceed
``apply_budget_margin(max_tokens)`` less the reserved tokens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from context_compiler.constants import DEFAULT_BUDGET_MARGIN_PERCENT
from context_compiler.estimator import apply_budget_margin, estimate_tokens
from context_compiler.models import SelectionStrategy
from context_compiler.rules.globs import match_any
from context_compiler.rules.models import Rule

TokenMeasure = Callable[[Rule], int]


@dataclass(frozen=True)
class SelectionOptions:
    strategy: SelectionStrategy = SelectionStrategy.ALL
    include_dirs: tuple[str, ...] = ()
    include_tags: tuple[str, ...] = ()
    max_tokens: Optional[int] = None
    always_include: tuple[str, ...] = ()
    margin_percent: float = DEFAULT_BUDGET_MARGIN_PERCENT


@dataclass(frozen=True)
class SelectionContext:
    context_files: Optional[tuple[str, ...]] = None


@dataclass
class SelectionResult:
    rules: list[Rule] = field(default_factory=list)
    excluded_by_filter: list[Rule] = field(default_factory=list)
    excluded_by_budget: list[Rule] = field(default_factory=list)
    total_tokens: int = 0

    @property
    def ids(self) -> list[str]:
        return [rule.id for rule in self.rules]


def body_tokens(rule: Rule) -> int:
    return estimate_tokens(rule.body)


def _normalize_dir(value: str) -> str:
    return value.strip().strip("/")


def filter_by_directory(rules: Sequence[Rule], include_dirs: Sequence[str]) -> list[Rule]:
    if not include_dirs:
        return list(rules)
    wanted = [_normalize_dir(item) for item in include_dirs]

    def keep(rule: Rule) -> bool:
        rule_dir = rule.source_dir
        for directory in wanted:
            if directory in ("", "."):
                return True
            if rule_dir == directory or rule_dir.startswith(directory + "/"):
                return True
        return False

    return [rule for rule in rules if keep(rule)]


def filter_by_glob(rules: Sequence[Rule], context_files: Optional[Sequence[str]]) -> list[Rule]:
    if not context_files:
        return list(rules)
    return [rule for rule in rules if match_any(context_files, rule.effective_globs)]


def filter_by_tag(rules: Sequence[Rule], include_tags: Sequence[str]) -> list[Rule]:
    if not include_tags:
        return list(rules)
    wanted = set(include_tags)
    return [rule for rule in rules if wanted.intersection(rule.tags)]


def sort_by_priority(rules: Sequence[Rule]) -> list[Rule]:
    return sorted(rules, key=lambda rule: (-rule.priority, rule.id))


def partition_always_apply(rules: Sequence[Rule]) -> tuple[list[Rule], list[Rule]]:
    always: list[Rule] = []
    conditional: list[Rule] = []
    for rule in rules:
        (always if rule.always_apply else conditional).append(rule)
    return always, conditional


def apply_strategy(
    rules: Sequence[Rule], options: SelectionOptions, context: SelectionContext
) -> list[Rule]:
    strategy = options.strategy
    if strategy == SelectionStrategy.DIRECTORY:
        return filter_by_directory(rules, options.include_dirs)
    if strategy == SelectionStrategy.GLOB:
        return filter_by_glob(rules, context.context_files)
    if strategy == SelectionStrategy.TAG:
        return filter_by_tag(rules, options.include_tags)
    return list(rules)


def select_within_budget(
    ordered: Sequence[Rule],
    max_tokens: int,
    margin_percent: float = DEFAULT_BUDGET_MARGIN_PERCENT,
    measure: TokenMeasure = body_tokens,
    reserved: int = 0,
) -> SelectionResult:
    """Admit ``ordered`` greedily until the first rule that would overflow.

    ``reserved`` tokens are taken out of the effective budget first. The
    overflowing rule and every rule after it are budget-excluded; no later,
    smaller rule is back-filled.
    """
    result = SelectionResult()
    if max_tokens <= 0:
        result.excluded_by_budget = list(ordered)
        return result

    effective = max(apply_budget_margin(max_tokens, margin_percent) - reserved, 0)
    for index, rule in enumerate(ordered):
        tokens = measure(rule)
        if result.total_tokens + tokens > effective:
            result.excluded_by_budget = list(ordered[index:])
            break
        result.rules.append(rule)
        result.total_tokens += tokens
    return result


def select(
    rules: Sequence[Rule],
    options: SelectionOptions,
    context: Optional[SelectionContext] = None,
    measure: TokenMeasure = body_tokens,
) -> SelectionResult:
    context = context or SelectionContext()
    always_apply, conditional = partition_always_apply(rules)

    candidates = apply_strategy(conditional, options, context)
    kept = {id(rule) for rule in candidates}
    excluded_by_filter = [rule for rule in conditional if id(rule) not in kept]

    allowlist = set(options.always_include)
    included = [rule for rule in candidates if rule.id in allowlist]
    remaining = [rule for rule in candidates if rule.id not in allowlist]
    always = sort_by_priority(always_apply)
    always_tokens = sum(measure(rule) for rule in always)
    ordered = sort_by_priority(included) + sort_by_priority(remaining)

    if options.max_tokens is None:
        return SelectionResult(
            rules=always + ordered,
            excluded_by_filter=excluded_by_filter,
            total_tokens=always_tokens + sum(measure(rule) for rule in ordered),
        )

    result = select_within_budget(
        ordered, options.max_tokens, options.margin_percent, measure, reserved=always_tokens
    )
    result.rules = always + result.rules
    result.total_tokens += always_tokens
    result.excluded_by_filter = excluded_by_filter
    return result
