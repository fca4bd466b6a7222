"""Category dependency graph and the transfer order derived from it."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from home_cloud_transfer.models.types import Category

DEPENDENCIES: Mapping[Category, frozenset[Category]] = {
    Category.locations: frozenset(),
    Category.quantity_units: frozenset(),
    Category.product_groups: frozenset(),
    Category.shopping_locations: frozenset(),
    Category.equipment_categories: frozenset(),
    Category.contact_tags: frozenset(),
    Category.contacts: frozenset(),
    Category.products: frozenset(
        {
            Category.locations,
            Category.quantity_units,
            Category.product_groups,
            Category.shopping_locations,
        },
    ),
    Category.equipment: frozenset({Category.equipment_categories}),
    Category.vehicles: frozenset(),
    Category.recipes: frozenset({Category.products, Category.quantity_units}),
    Category.chores: frozenset(),
    Category.chore_logs: frozenset({Category.chores}),
    Category.todo_items: frozenset(),
    Category.shopping_lists: frozenset({Category.products}),
    Category.storage_bins: frozenset({Category.locations}),
    Category.home: frozenset(),
    Category.calendar_events: frozenset(),
    Category.stock: frozenset({Category.products, Category.locations}),
}

HISTORY_CATEGORIES: frozenset[Category] = frozenset({Category.chore_logs})


def topological_order(
    graph: Mapping[Category, Iterable[Category]],
) -> list[Category]:
    """Sort categories so every category follows the ones it depends on.

    Among categories whose dependencies are all satisfied, the one declared
    first in ``graph`` wins, so the result is deterministic.

    Args:
        graph: Category to dependency categories, in declaration order.

    Returns:
        Categories in transfer order.

    Raises:
        ValueError: On an unknown dependency or a cycle.
    """
    declared = list(graph)
    position = {category: idx for idx, category in enumerate(declared)}
    pending: dict[Category, set[Category]] = {}
    for category, deps in graph.items():
        dep_set = set(deps)
        unknown = dep_set - position.keys()
        if unknown:
            names = ", ".join(sorted(str(dep) for dep in unknown))
            raise ValueError(f"{category} depends on undeclared categories: {names}")
        pending[category] = dep_set

    order: list[Category] = []
    done: set[Category] = set()
    while pending:
        ready = [category for category, deps in pending.items() if deps <= done]
        if not ready:
            names = ", ".join(sorted(str(category) for category in pending))
            raise ValueError(f"Dependency cycle between categories: {names}")
        nxt = min(ready, key=position.__getitem__)
        order.append(nxt)
        done.add(nxt)
        del pending[nxt]
    return order


TRANSFER_ORDER: tuple[Category, ...] = tuple(topological_order(DEPENDENCIES))


def active_categories(*, include_history: bool) -> list[Category]:
    """Return the categories a run processes, in transfer order.

    Args:
        include_history: Whether history-only categories are in scope.

    Returns:
        Ordered category list.
    """
    if include_history:
        return list(TRANSFER_ORDER)
    return [category for category in TRANSFER_ORDER if category not in HISTORY_CATEGORIES]
