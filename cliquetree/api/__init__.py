"""
API module: marginal, partition-function and sampling queries.
"""

from cliquetree.api.query import (
    QueryContext,
    find_clique,
    greedy_cover,
    marginal,
    log_partition,
    joint_log_partition,
    sample,
)

__all__ = [
    "QueryContext",
    "find_clique",
    "greedy_cover",
    "marginal",
    "log_partition",
    "joint_log_partition",
    "sample",
]
