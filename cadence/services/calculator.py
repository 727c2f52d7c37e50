"""Bottom-up duration computation for the training catalogue."""
from __future__ import annotations

from ..models import HierarchyNode


class DurationCalculator:
    """Compute the duration a node should store.

    A course keeps its stored value. A container sums the *stored* durations
    of its active direct children without recursing, so levels below must be
    reconciled first for the result to be globally consistent.
    """

    def compute_duration(self, node: HierarchyNode) -> int:
        if node.is_leaf:
            return node.duration_minutes or 0
        return sum(child.duration_minutes or 0 for child in node.active_children())
