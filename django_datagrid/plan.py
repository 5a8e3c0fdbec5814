"""
Django-Datagrid Query Plans

Builds the engine-agnostic description of a grid query: projection,
joins, search predicates, ordering and the paging window, plus the two
count queries DataTables needs.
"""

import logging
from dataclasses import dataclass, field

from django_datagrid.exceptions import RequestShapeError

logger = logging.getLogger("django_datagrid.plan")

SORT_DIRECTIONS = ("asc", "desc")


@dataclass
class Predicate:
    """A "contains" test of one column against a bound parameter."""

    field: str  # fully qualified name, e.g. "customer.name"
    parameter: str
    value: str
    case_insensitive: bool = False

    @property
    def pattern(self):
        return f"%{self.value}%"


@dataclass
class PredicateGroup:
    connector: str  # "OR" or "AND"
    predicates: list = field(default_factory=list)

    def __len__(self):
        return len(self.predicates)


@dataclass
class OrderClause:
    field: str
    direction: str = "asc"


@dataclass
class PageWindow:
    offset: int = 0
    limit: int = -1


@dataclass
class QueryPlan:
    root_model: type
    root_alias: str
    root_identifier: str
    select: dict = field(default_factory=dict)  # alias -> [attribute, ...]
    joins: list = field(default_factory=list)  # [JoinSpec] with kinds resolved
    where: list = field(default_factory=list)  # non-empty PredicateGroups, AND-ed together
    extensions: list = field(default_factory=list)
    order_by: list = field(default_factory=list)
    page: PageWindow = None  # None means every row
    entities: dict = field(default_factory=dict)  # alias -> model
    relations: dict = field(default_factory=dict)  # alias -> tuple of ORM relation names
    lookups: dict = field(default_factory=dict)  # fully qualified name -> ORM lookup
    keys: dict = field(default_factory=dict)  # fully qualified name -> [key in result rows, ...]
    identifiers: dict = field(default_factory=dict)  # alias -> identifier attribute
    collection_aliases: set = field(default_factory=set)  # aliases reached through a collection hop
    contains_collections: bool = False
    paginate_roots: bool = True  # page over distinct root records when collections are joined

    @property
    def parameters(self):
        """Bound parameter name -> LIKE pattern, across all predicate groups."""
        return {p.parameter: p.pattern for group in self.where for p in group.predicates}

    def lookup(self, name):
        """
        ORM lookup for a fully qualified grid name or a bare alias.

        Names that were not selected are taken to use the ORM field name
        after the alias.

        Examples:
            >>> plan.lookup("customer.name")
            'customer__name'
            >>> plan.lookup("location")
            'customer__location'
        """
        if name in self.relations:
            return "__".join(self.relations[name])
        if name in self.lookups:
            return self.lookups[name]
        alias, _, orm_field = name.partition(".")
        if alias not in self.relations or not orm_field:
            raise KeyError(name)
        return "__".join(self.relations[alias] + (orm_field,))

    def crosses_collection(self, name):
        """Whether a fully qualified name is reached through a collection-valued join."""
        return name.partition(".")[0] in self.collection_aliases


@dataclass
class CountPlan:
    root_model: type
    root_identifier: str
    joins: list = field(default_factory=list)
    where: list = field(default_factory=list)
    extensions: list = field(default_factory=list)
    source: QueryPlan = None


def _parameter_name(prefix, binding, used):
    name = f"{prefix}_{binding.entity_alias}_{binding.field_name}"
    candidate = name
    counter = 2
    while candidate in used:
        candidate = f"{name}_{counter}"
        counter += 1
    used.add(candidate)
    return candidate


def _search_predicate(binding, parameter, value, case_insensitive):
    if case_insensitive:
        value = value.lower()
    return Predicate(binding.fully_qualified_name, parameter, value, case_insensitive)


def build_where(columns, bindings, search="", case_insensitive=False):
    """
    Build the search predicate groups.

    The global search value yields one OR-group over every searchable
    column; per-column search values yield one AND-group. Empty groups are
    omitted.

    Returns:
        List of PredicateGroup (0, 1 or 2 entries)
    """
    used = set()
    groups = []

    if search:
        global_group = PredicateGroup("OR")
        for column, binding in zip(columns, bindings):
            if column.searchable:
                parameter = _parameter_name("sSearch_global", binding, used)
                global_group.predicates.append(_search_predicate(binding, parameter, search, case_insensitive))
        if global_group:
            groups.append(global_group)

    column_group = PredicateGroup("AND")
    for column, binding in zip(columns, bindings):
        if column.searchable and column.search_value:
            parameter = _parameter_name("sSearch_single", binding, used)
            column_group.predicates.append(
                _search_predicate(binding, parameter, column.search_value, case_insensitive)
            )
    if column_group:
        groups.append(column_group)

    return groups


def build_order_by(columns, bindings, sorting):
    """
    Build ordering clauses from (column index, direction) pairs.

    Directives pointing at unknown or non-sortable columns are skipped.

    Raises:
        RequestShapeError: If a direction is not "asc" or "desc"
    """
    order_by = []
    for index, direction in sorting:
        if index < 0 or index >= len(columns) or not columns[index].sortable:
            logger.debug("Ignoring sort on column %s", index)
            continue
        direction = (direction or "asc").lower()
        if direction not in SORT_DIRECTIONS:
            raise RequestShapeError(f"Invalid sort direction '{direction}' for column {index}")
        order_by.append(OrderClause(bindings[index].fully_qualified_name, direction))
    return order_by


def build_select(registry, bindings):
    """
    Group requested attributes by alias and complete identifiers.

    Every joined alias appears (even without requested fields) and carries
    its identifier at position 0, even when a column asked for it later;
    the root alias carries the root identifier.
    """
    select = {registry.root_alias: []}
    for alias in registry.joins:
        select[alias] = []

    for binding in bindings:
        fields = select.setdefault(binding.join_alias, [])
        if binding.attribute not in fields:
            fields.append(binding.attribute)

    identifiers = {alias: names[0] for alias, names in registry.identifiers.items() if names}
    identifiers[registry.root_alias] = registry.root_identifier
    for alias, identifier in identifiers.items():
        fields = select[alias]
        if identifier in fields:
            fields.remove(identifier)
        fields.insert(0, identifier)

    return select


def build_plan(
    schema,
    registry,
    columns,
    bindings,
    search="",
    sorting=(),
    page=None,
    extensions=(),
    case_insensitive=False,
    paginate_roots=True,
):
    """
    Compose a QueryPlan for a resolved grid request.

    Args:
        schema: Schema metadata provider
        registry: JoinRegistry populated while resolving ``bindings``
        columns: ColumnRequest list, same order as ``bindings``
        bindings: ColumnBinding list
        search: Global search string
        sorting: Iterable of (column index, direction)
        page: PageWindow; a limit of -1 (or None) means every row
        extensions: WhereExtension list, applied in order by the engine
        case_insensitive: Lower-case search values and compare case-insensitively
        paginate_roots: Page over distinct root records when collections are
            joined; when false the window slices raw joined records

    Returns:
        QueryPlan
    """
    entities = registry.entities()
    joins = registry.resolved_joins()

    relations = {registry.root_alias: ()}
    collection_aliases = set()
    for join in joins:
        owner_model = entities[join.owner_alias]
        relations[join.alias] = relations[join.owner_alias] + (schema.orm_name(owner_model, join.association),)
        if join.collection or join.owner_alias in collection_aliases:
            collection_aliases.add(join.alias)

    select = build_select(registry, bindings)
    lookups = {}
    keys = {}
    for alias, attributes in select.items():
        for attribute in attributes:
            name = f"{alias}.{attribute}"
            lookups[name] = "__".join(relations[alias] + (schema.orm_name(entities[alias], attribute),))
    for binding in bindings:
        spellings = keys.setdefault(binding.fully_qualified_name, [])
        if binding.segments[-1] not in spellings:
            spellings.append(binding.segments[-1])
    for name in lookups:
        keys.setdefault(name, [name.partition(".")[2]])

    if page is not None and page.limit == -1:
        page = None

    plan = QueryPlan(
        root_model=registry.root_model,
        root_alias=registry.root_alias,
        root_identifier=registry.root_identifier,
        select=select,
        joins=joins,
        where=build_where(columns, bindings, search, case_insensitive),
        extensions=list(extensions),
        order_by=build_order_by(columns, bindings, sorting),
        page=page,
        entities=entities,
        relations=relations,
        lookups=lookups,
        keys=keys,
        identifiers={alias: attributes[0] for alias, attributes in select.items()},
        collection_aliases=collection_aliases,
        contains_collections=any(binding.contains_collection_hop for binding in bindings),
        paginate_roots=paginate_roots,
    )
    logger.debug(
        "Built plan for %s: %d joins, %d predicate groups, %d order clauses, page=%s",
        registry.root_model.__name__,
        len(plan.joins),
        len(plan.where),
        len(plan.order_by),
        plan.page,
    )
    return plan


def build_count_plans(plan, scope_total=True):
    """
    Build the (total, filtered) count plans for a QueryPlan.

    The total count has no joins and no search predicates; extensions are
    applied only when ``scope_total`` is set. The filtered count carries
    the full join set, predicates and extensions.
    """
    total = CountPlan(
        root_model=plan.root_model,
        root_identifier=plan.root_identifier,
        extensions=list(plan.extensions) if scope_total else [],
        source=plan,
    )
    filtered = CountPlan(
        root_model=plan.root_model,
        root_identifier=plan.root_identifier,
        joins=list(plan.joins),
        where=list(plan.where),
        extensions=list(plan.extensions),
        source=plan,
    )
    return total, filtered
