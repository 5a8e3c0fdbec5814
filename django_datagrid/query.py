"""
Django-Datagrid Query Engine

Executes query plans with the Django ORM.

Provides:
- DjangoQueryEngine: plan -> nested row dicts, count plan -> int
- get_model_by_name for resolving models from strings
"""

import logging

from django.apps import apps
from django.db import DatabaseError
from django.db.models import Count, Max, Min, Q

from django_datagrid.exceptions import ExecutionError
from django_datagrid.fields import model_schema
from django_datagrid.filters import collect_predicates
from django_datagrid.joins import JoinKind
from django_datagrid.plan import CountPlan


logger = logging.getLogger("django_datagrid.query")


def get_model_by_name(model_name):
    """
    Get Django model class by name.

    Accepts "app_label.ModelName" or a bare model name, which is matched
    case-insensitively across all installed apps.

    Args:
        model_name: Model name to find

    Returns:
        Model class or None if not found
    """
    if "." in model_name:
        app_label, name = model_name.split(".", 1)
        try:
            return apps.get_model(app_label, name)
        except LookupError:
            return None

    for app_config in apps.get_app_configs():
        for model in app_config.get_models():
            if model.__name__.lower() == model_name.lower():
                return model
    return None


class DjangoQueryEngine:
    """
    Runs QueryPlans and CountPlans against the Django ORM.

    Joins are expressed through lookups: every selected field becomes a
    ``values()`` lookup, inner joins become ``<relation>__isnull=False``
    conditions, and all conditions go into a single ``filter()`` call so
    multi-valued relations are joined once.

    Example:
        engine = DjangoQueryEngine()
        rows = engine.fetch(plan)
        total = engine.count(total_plan)
    """

    def __init__(self, schema=None, using=None):
        self.schema = schema or model_schema
        self.using = using

    def queryset(self, model):
        queryset = model._default_manager.all()
        if self.using:
            queryset = queryset.using(self.using)
        return queryset

    def where(self, plan):
        """Build the single Q object restricting a QueryPlan or CountPlan."""
        source = plan.source if isinstance(plan, CountPlan) else plan
        q = Q()

        for join in plan.joins:
            if join.kind is JoinKind.INNER:
                q &= Q(**{f"{source.lookup(join.alias)}__isnull": False})

        for group in plan.where:
            group_q = Q()
            for predicate in group.predicates:
                operator = "icontains" if predicate.case_insensitive else "contains"
                predicate_q = Q(**{f"{source.lookup(predicate.field)}__{operator}": predicate.value})
                if group.connector == "OR":
                    group_q |= predicate_q
                else:
                    group_q &= predicate_q
            q &= group_q

        for predicate in collect_predicates(plan.extensions, source):
            q &= predicate

        return q

    def ordering(self, plan):
        order_by = []
        for clause in plan.order_by:
            prefix = "-" if clause.direction == "desc" else ""
            order_by.append(prefix + plan.lookup(clause.field))
        if not order_by:
            order_by.append(self._root_lookup(plan))
        return order_by

    def fetch(self, plan):
        """
        Execute a QueryPlan.

        When collection-valued relations are joined, the paging window is
        applied to distinct root records so one page always holds up to
        ``limit`` root rows, however many child rows each one has. With
        ``plan.paginate_roots`` off the window slices the joined records.

        Returns:
            List of nested row dicts, one per root record
        """
        where = self.where(plan)
        ordering = self.ordering(plan)
        root_lookup = self._root_lookup(plan)
        fields = list(dict.fromkeys(plan.lookups.values()))
        queryset = self.queryset(plan.root_model).filter(where).order_by(*ordering)

        root_ids = None
        if plan.page is None:
            records = self._evaluate(queryset.values(*fields))
        else:
            start = plan.page.offset
            stop = start + plan.page.limit
            if plan.contains_collections and plan.paginate_roots:
                root_ids = self.page_root_ids(plan, where, start, stop)
                queryset = (
                    self.queryset(plan.root_model)
                    .filter(where & Q(**{f"{root_lookup}__in": root_ids}))
                    .order_by(*ordering)
                )
                records = self._evaluate(queryset.values(*fields))
            else:
                records = self._evaluate(queryset.values(*fields)[start:stop])

        rows = self.hydrate(plan, records)
        if root_ids is not None:
            rows = [rows[pk] for pk in root_ids if pk in rows]
        else:
            rows = list(rows.values())
        logger.debug("Fetched %d rows (%d records) for %s", len(rows), len(records), plan.root_model.__name__)
        return rows

    def count(self, count_plan):
        """Count distinct root identifiers matching a CountPlan."""
        queryset = self.queryset(count_plan.root_model).filter(self.where(count_plan))
        try:
            total = queryset.aggregate(total=Count("pk", distinct=True))["total"]
        except DatabaseError as exc:
            logger.error("Count query failed for %s: %s", count_plan.root_model.__name__, exc)
            raise ExecutionError(f"Count query failed: {exc}") from exc
        return int(total or 0)

    def page_root_ids(self, plan, where, start, stop):
        """
        Root identifiers for one page, in grid order.

        Roots are grouped so each appears once. Sorting on a column reached
        through a collection uses the smallest child value for ascending
        order and the largest for descending order; the root identifier
        breaks ties so consecutive pages never overlap.
        """
        root_lookup = self._root_lookup(plan)
        annotations = {}
        order = []
        for index, clause in enumerate(plan.order_by):
            lookup = plan.lookup(clause.field)
            if plan.crosses_collection(clause.field):
                name = f"grid_order_{index}"
                annotations[name] = Min(lookup) if clause.direction == "asc" else Max(lookup)
                lookup = name
            order.append(("-" if clause.direction == "desc" else "") + lookup)
        if root_lookup not in order:
            order.append(root_lookup)

        queryset = self.queryset(plan.root_model).filter(where).values(root_lookup)
        if annotations:
            queryset = queryset.annotate(**annotations)
        else:
            queryset = queryset.distinct()
        page = queryset.order_by(*order)[start:stop]
        return list(dict.fromkeys(record[root_lookup] for record in self._evaluate(page)))

    def hydrate(self, plan, records):
        """
        Nest flat ``values()`` records into one dict per root record.

        To-one joins become nested dicts (None when a left join found
        nothing); collection joins become lists of child dicts, de-duplicated
        by child identifier.

        Returns:
            Dict of root identifier -> row, in first-seen order
        """
        rows = {}
        seen = {}
        root_lookup = self._root_lookup(plan)

        for record in records:
            root_pk = record[root_lookup]
            row = rows.get(root_pk)
            if row is None:
                row = rows[root_pk] = self._node(plan, plan.root_alias, record)

            nodes = {plan.root_alias: row}
            paths = {plan.root_alias: (root_pk,)}
            for join in plan.joins:
                parent = nodes.get(join.owner_alias)
                if parent is None:
                    nodes[join.alias] = None
                    continue

                identifier = plan.identifiers[join.alias]
                child_pk = record[plan.lookups[f"{join.alias}.{identifier}"]]
                if child_pk is None:
                    for key in join.keys:
                        parent.setdefault(key, [] if join.collection else None)
                    nodes[join.alias] = None
                    continue

                path = paths[join.owner_alias] + (join.alias, child_pk)
                node = seen.get(path)
                if node is None:
                    node = seen[path] = self._node(plan, join.alias, record)
                    for key in join.keys:
                        if join.collection:
                            parent.setdefault(key, []).append(node)
                        else:
                            parent[key] = node
                nodes[join.alias] = node
                paths[join.alias] = path

        return rows

    def _node(self, plan, alias, record):
        node = {}
        for attribute in plan.select[alias]:
            name = f"{alias}.{attribute}"
            for key in plan.keys[name]:
                node[key] = record[plan.lookups[name]]
        return node

    def _root_lookup(self, plan):
        return plan.lookup(f"{plan.root_alias}.{plan.root_identifier}")

    def _evaluate(self, queryset):
        try:
            return list(queryset)
        except DatabaseError as exc:
            logger.error("Grid query failed: %s", exc)
            raise ExecutionError(f"Grid query failed: {exc}") from exc
