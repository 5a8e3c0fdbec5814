"""
Django-Datagrid Join Planning

Keeps the registry of joins a grid request needs and hands out
deterministic, collision-free aliases for them.

Alias rule:
    alias = lower camel table name of the join target
    - self-referencing joins (target is the root model) get "_<association>"
    - an alias already taken by a different join gets "_<association>",
      then a numeric suffix
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from django_datagrid.fields import normalize_name


class JoinKind(Enum):
    """How a join is materialized."""

    INNER = "inner"
    LEFT = "left"

    @classmethod
    def parse(cls, value):
        """
        Map a configuration value to a JoinKind.

        Examples:
            >>> JoinKind.parse("LEFT")
            <JoinKind.LEFT: 'left'>
            >>> JoinKind.parse("outer")
            Traceback (most recent call last):
            ValueError: Unknown join type 'outer', expected 'inner' or 'left'
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"Unknown join type '{value}', expected 'inner' or 'left'")


@dataclass
class JoinSpec:
    """One join in a grid query."""

    alias: str
    owner_alias: str
    association: str  # normalized association name on the owner
    target: type  # model class reached by the join
    key: str  # first raw path segment seen for this hop
    path: str  # originating path prefix, e.g. "customer.location"
    column_path: str  # raw path of the first column that needed this join
    collection: bool = False
    kind: JoinKind = JoinKind.INNER
    keys: list = field(default_factory=list)  # every raw spelling of this hop, used as nested keys in rows

    def __post_init__(self):
        if self.key not in self.keys:
            self.keys.insert(0, self.key)

    @property
    def source_expression(self):
        return f"{self.owner_alias}.{self.association}"


class JoinRegistry:
    """
    Request-scoped registry of required joins.

    Registration is idempotent per alias: the first column reaching an
    alias stores the join and the target's identifier requirement; later
    columns reaching the same alias reuse it.

    Example:
        registry = JoinRegistry(model_schema, Order)
        alias = registry.register("order", "customer", Customer, "customer", "customer", "customer.name")
        registry.joins["customer"].source_expression  # 'order.customer'
    """

    def __init__(self, schema, root_model, default_kind=JoinKind.INNER):
        self.schema = schema
        self.root_model = root_model
        self.root_alias = normalize_name(schema.table_name(root_model))
        self.root_identifier = schema.identifier_field_names(root_model)[0]
        self.default_kind = JoinKind.parse(default_kind)
        self.joins = {}
        self.identifiers = {}
        self.join_kinds = {}

    def __len__(self):
        return len(self.joins)

    def __iter__(self):
        return iter(self.joins.values())

    def __contains__(self, alias):
        return alias in self.joins

    def _taken(self, alias, source):
        if alias == self.root_alias:
            return True
        existing = self.joins.get(alias)
        return existing is not None and existing.source_expression != source

    def join_alias(self, owner_alias, association, target):
        """Compute the alias for joining ``owner_alias.association`` to ``target``."""
        source = f"{owner_alias}.{association}"
        base = normalize_name(self.schema.table_name(target))
        if target is self.root_model:
            base = f"{base}_{association}"

        alias = base
        if self._taken(alias, source) and not base.endswith(f"_{association}"):
            base = f"{base}_{association}"
            alias = base
        counter = 2
        while self._taken(alias, source):
            alias = f"{base}{counter}"
            counter += 1
        return alias

    def register(self, owner_alias, association, target, key, path, column_path, collection=False):
        """
        Register the join for ``owner_alias.association`` and return its alias.

        Args:
            owner_alias: Alias of the entity owning the association
            association: Normalized association name
            target: Target model class
            key: Raw path segment for this hop
            path: Path prefix up to and including this hop
            column_path: Raw path of the requesting column
            collection: Whether the association is collection-valued

        Returns:
            The join alias (existing or newly registered)
        """
        alias = self.join_alias(owner_alias, association, target)
        if alias not in self.joins:
            self.joins[alias] = JoinSpec(
                alias=alias,
                owner_alias=owner_alias,
                association=association,
                target=target,
                key=key,
                path=path,
                column_path=column_path,
                collection=collection,
                kind=self.default_kind,
            )
            self.identifiers[alias] = list(self.schema.identifier_field_names(target))
        elif key not in self.joins[alias].keys:
            self.joins[alias].keys.append(key)
        return alias

    def set_join_kind(self, path, kind):
        """Override the join kind for joins reached through ``path``."""
        self.join_kinds[path] = JoinKind.parse(kind)
        return self

    def kind_for(self, join):
        """Resolve the join kind: path prefix override, then column override, then default."""
        if join.path in self.join_kinds:
            return self.join_kinds[join.path]
        return self.join_kinds.get(join.column_path, self.default_kind)

    def resolved_joins(self):
        """Joins in registration order, with their kinds resolved."""
        return [replace(join, kind=self.kind_for(join), keys=list(join.keys)) for join in self.joins.values()]

    def entities(self):
        """Map every alias (root included) to its model class."""
        entities = {self.root_alias: self.root_model}
        for join in self.joins.values():
            entities[join.alias] = join.target
        return entities
