"""Cross-table write order derived from the declared foreign keys.

Pure logic -- a topological sort over ``DatasetSchema.relations``.  The
order is computed once per schema (``SyncManager`` keeps it for its whole
lifetime) and never per synchronization call.

- ``insert_order``: every parent table before its child tables.
- ``update_order``: same as insert order, so an update never points a row
  at a parent that is not yet in place.
- ``delete_order``: exact reverse of insert order, children first.

Tables unrelated by foreign keys keep their declaration order.
Self-references do not take part; their rows are ordered within the table
by ``dataset_sync.sync.self_reference``.

Usage:
    from dataset_sync.sync.order import TableOrder

    order = TableOrder.from_schema(schema)
    order.insert_order   # ['lut_habitat_class', 'lut_habitat_type', ..., 'incid', ...]
    order.delete_order   # reverse
"""

import heapq

from pydantic import BaseModel, ConfigDict, Field

from dataset_sync.errors import SchemaCycleError
from dataset_sync.schema.models import DatasetSchema


class TableOrder(BaseModel):
    """Static write order for the tables of one schema."""

    model_config = ConfigDict(frozen=True)

    insert_order: list[str]
    self_referencing: list[str] = Field(default_factory=list)

    @property
    def update_order(self) -> list[str]:
        return list(self.insert_order)

    @property
    def delete_order(self) -> list[str]:
        return list(reversed(self.insert_order))

    def insert_position(self, table_name: str) -> int:
        """Index of a table in the insert order.

        Raises:
            ValueError: If the table is not part of the order.
        """
        return self.insert_order.index(table_name)

    @classmethod
    def from_schema(cls, schema: DatasetSchema) -> "TableOrder":
        """Topologically sort the schema's tables (Kahn's algorithm).

        Among tables whose parents are all placed, the earliest declared
        table is placed next.

        Raises:
            SchemaCycleError: If foreign keys between distinct tables form
                a cycle.

        Examples:
            >>> order = TableOrder.from_schema(schema)   # child declared before parent
            >>> order.insert_order
            ['parent', 'child']
        """
        names = schema.table_names
        position = {name: i for i, name in enumerate(names)}

        children: dict[str, set[str]] = {name: set() for name in names}
        parent_count: dict[str, int] = {name: 0 for name in names}
        for rel in schema.relations:
            if rel.is_self_reference or rel.child_table in children[rel.parent_table]:
                continue
            children[rel.parent_table].add(rel.child_table)
            parent_count[rel.child_table] += 1

        ready = [position[name] for name in names if parent_count[name] == 0]
        heapq.heapify(ready)
        ordered: list[str] = []

        while ready:
            name = names[heapq.heappop(ready)]
            ordered.append(name)
            for child in children[name]:
                parent_count[child] -= 1
                if parent_count[child] == 0:
                    heapq.heappush(ready, position[child])

        if len(ordered) < len(names):
            placed = set(ordered)
            raise SchemaCycleError([n for n in names if n not in placed])

        self_referencing = [
            name for name in ordered if schema.self_relation(name) is not None
        ]
        return cls(insert_order=ordered, self_referencing=self_referencing)
