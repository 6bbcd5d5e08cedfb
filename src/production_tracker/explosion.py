# Module: src/production_tracker/explosion.py
# Description: Level-by-level multi-level bill of materials explosion.

import logging
from datetime import date
from typing import List, Optional, Set, Tuple

from .interfaces import StructureStore
from .models import ExplosionRow

logger = logging.getLogger(__name__)


class StructureExplosionEngine:
    """
    Expands a top item into every structure edge reachable beneath it.

    The traversal is breadth-first. All working state (the visited set and the
    current level buffer) lives inside a single explode() call, so one engine
    can serve concurrent callers.
    """

    def __init__(self, store: StructureStore):
        self.store = store

    def explode(self, top_item: str, as_of: Optional[date] = None) -> List[ExplosionRow]:
        """
        Returns one row per edge reached, tagged with the level it was first reached at.

        Level 1 holds the direct edges of top_item. Each following level holds the
        edges of the components introduced by the previous level. A (parent, component)
        pair is emitted at most once, which bounds the traversal even when the
        structure contains a cycle. Rows for a shared component are not aggregated.

        Args:
            top_item: Item to explode.
            as_of: Effectivity date, defaults to today.

        Returns:
            Rows ordered by level, then parent, sequence and component.
            Empty when the item is unknown or has no active edges.
        """
        as_of = as_of or date.today()
        visited: Set[Tuple[str, str]] = set()
        rows: List[ExplosionRow] = []

        frontier = [top_item]
        level = 1
        while frontier:
            level_rows: List[ExplosionRow] = []
            for parent in frontier:
                for edge in self.store.active_edges_of(parent, as_of):
                    if edge.key in visited:
                        continue
                    visited.add(edge.key)
                    level_rows.append(ExplosionRow(
                        level=level,
                        parent=edge.parent,
                        component=edge.component,
                        quantity_per_unit=edge.quantity_per_unit,
                        sequence=edge.sequence,
                        work_centre=edge.work_centre,
                        auto_issue=edge.auto_issue,
                    ))

            if not level_rows:
                break

            level_rows.sort(key=lambda r: (r.parent, r.sequence, r.component))
            logger.debug(f"Explosion of {top_item}: level {level} added {len(level_rows)} edge(s)")
            rows.extend(level_rows)

            # Next frontier: components introduced at this level, first occurrence wins
            seen_components = set()
            frontier = []
            for row in level_rows:
                if row.component not in seen_components:
                    seen_components.add(row.component)
                    frontier.append(row.component)
            level += 1

        logger.debug(f"Explosion of {top_item} as of {as_of} finished with {len(rows)} row(s) over {level - 1} level(s)")
        return rows
