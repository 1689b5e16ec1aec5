"""
Expansion of OVAL criteria trees into disjunctive normal form.

Each returned possibility is one conjunction of leaf criterions that
satisfies the tree. Leaves that carry no package information (signing key
assertions, ksplice hot-patch variants) are dropped before any combination.
"""
from typing import Iterable, List, Sequence

from .models import Criteria, Criterion, Operator


IGNORED_CRITERIONS = (
    " is signed with the Oracle Linux",
    ".ksplice1.",
)

Possibility = List[Criterion]


def filter_criterions(
    criterions: Iterable[Criterion],
    ignored: Sequence[str] = IGNORED_CRITERIONS,
) -> List[Criterion]:
    """Drop criterions whose comment contains an ignorable marker."""
    return [
        c for c in criterions
        if not any(marker in c.comment for marker in ignored)
    ]


def get_criterions(node: Criteria, ignored: Sequence[str] = IGNORED_CRITERIONS) -> List[Possibility]:
    """
    Possibilities contributed by a node's own leaves.

    AND yields a single conjunction of every leaf, OR yields one possibility
    per leaf, anything else yields nothing.
    """
    criterions = filter_criterions(node.criterions, ignored)

    if node.operator is Operator.AND:
        return [criterions]
    elif node.operator is Operator.OR:
        return [[c] for c in criterions]

    return []


def get_possibilities(node: Criteria, ignored: Sequence[str] = IGNORED_CRITERIONS) -> List[Possibility]:
    """
    Expand a criteria tree into its list of possibilities.

    Args:
        node: Root of the criteria tree
        ignored: Comment substrings that disqualify a leaf

    Returns:
        List of possibilities, each a list of criterions
    """
    if not node.children:
        return get_criterions(node, ignored)

    groups = [get_possibilities(child, ignored) for child in node.children]
    if node.criterions:
        groups.append(get_criterions(node, ignored))

    if node.operator is Operator.AND:
        possibilities = list(groups[0])
        for group in groups[1:]:
            possibilities = [
                partial + member
                for partial in possibilities
                for member in group
            ]
        return possibilities

    if node.operator is Operator.OR:
        return [possibility for group in groups for possibility in group]

    return []
