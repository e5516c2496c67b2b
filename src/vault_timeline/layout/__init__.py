from .forest import ancestors, build_forest, descendants, link_parents
from .classifier import classify, effective_date, placement_date, validate_window
from .blocks import resolve_blocks
from .queries import apply_queries, parse_query

__all__ = [
    "build_forest",
    "link_parents",
    "descendants",
    "ancestors",
    "classify",
    "validate_window",
    "effective_date",
    "placement_date",
    "resolve_blocks",
    "apply_queries",
    "parse_query",
]
