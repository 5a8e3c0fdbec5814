"""
Django-Datagrid Filter Extensions

Extension points that contribute extra predicates to grid queries, and
value filters that transform cell values after a query runs.

Supports:
- Callables returning Q objects (e.g. tenant scoping)
- Precomputed predicate collections
- Declarative filter dicts ({"status": "x", "customer.name.icontains": "y"})
- Value filters applied per column, in registration order
"""

from django.db.models import Q

from django_datagrid.exceptions import CallbackContractError


# Django ORM operators accepted as the last segment of a filter key
OPERATORS = {
    "lt",
    "lte",
    "gt",
    "gte",
    "exact",
    "iexact",
    "in",
    "isnull",
    "range",
    "contains",
    "icontains",
    "startswith",
    "istartswith",
    "endswith",
    "iendswith",
}


def parse_filter_key(key):
    """
    Parse a filter key into (field_path, operator).

    Examples:
        >>> parse_filter_key("status")
        ('status', None)
        >>> parse_filter_key("customer.name.icontains")
        ('customer__name', 'icontains')
    """
    parts = key.split(".")
    operator = None
    if len(parts) > 1 and parts[-1] in OPERATORS:
        operator = parts.pop()
    return "__".join(parts), operator


def _leaf_q(key, value):
    field_path, operator = parse_filter_key(key)
    lookup = f"{field_path}__{operator}" if operator else field_path
    return Q(**{lookup: value})


def build_q_object(filters):
    """
    Build a Django Q object from a declarative filter dict.

    Keys are AND-ed. "or" and "and" take a dict or a list of dicts,
    "not" takes a dict.

    Examples:
        >>> build_q_object({"status": "paid", "amount.gte": 10})
        <Q: (AND: ('status', 'paid'), ('amount__gte', 10))>
        >>> build_q_object({"or": [{"status": "paid"}, {"status": "open"}]})
        <Q: (OR: ('status', 'paid'), ('status', 'open'))>
    """
    result = Q()
    for key, value in (filters or {}).items():
        if key in ("or", "and"):
            items = list(value.items()) if isinstance(value, dict) else value
            sub_q = Q()
            for item in items:
                item_q = _leaf_q(*item) if isinstance(item, tuple) else build_q_object(item)
                sub_q = sub_q | item_q if key == "or" else sub_q & item_q
            result &= sub_q
        elif key == "not":
            result &= ~build_q_object(value)
        else:
            result &= _leaf_q(key, value)
    return result


class WhereExtension:
    """
    Base class for objects that add predicates to a grid query.

    Subclasses implement ``predicates(plan)`` returning a list of Q objects.
    The plan is passed so extensions can translate grid names into ORM
    lookups with ``plan.lookup("customer.name")``.
    """

    def predicates(self, plan):
        raise NotImplementedError


class CallableExtension(WhereExtension):
    """Wraps ``fn(plan)`` returning a Q, a list/tuple of Q, or None."""

    def __init__(self, fn):
        self.fn = fn

    def predicates(self, plan):
        result = self.fn(plan)
        if result is None:
            return []
        if isinstance(result, Q):
            return [result]
        if isinstance(result, (list, tuple)):
            return list(result)
        raise CallbackContractError(
            f"Where extension {self.fn!r} must return a Q object, a list of Q objects or None, "
            f"got {type(result).__name__}"
        )


class PredicateCollection(WhereExtension):
    """Injects an externally computed list of Q objects."""

    def __init__(self, predicates):
        if not isinstance(predicates, (list, tuple)):
            raise CallbackContractError(
                f"Predicate collection must be a list, got {type(predicates).__name__}"
            )
        self._predicates = list(predicates)

    def predicates(self, plan):
        return list(self._predicates)


class FilterExtension(WhereExtension):
    """Adds a declarative filter dict (see build_q_object)."""

    def __init__(self, filters):
        if not isinstance(filters, dict):
            raise CallbackContractError(f"Filters must be a dict, got {type(filters).__name__}")
        self.filters = filters

    def predicates(self, plan):
        return [build_q_object(self.filters)]


def as_extension(obj):
    """Normalize an extension or plain callable into a WhereExtension."""
    if isinstance(obj, WhereExtension):
        return obj
    if callable(obj):
        return CallableExtension(obj)
    raise CallbackContractError(f"Where extension must be callable, got {type(obj).__name__}")


def collect_predicates(extensions, plan):
    """
    Apply extensions in registration order and gather their predicates.

    Raises:
        CallbackContractError: If an extension yields anything but Q objects
    """
    collected = []
    for extension in extensions:
        for predicate in extension.predicates(plan):
            if not isinstance(predicate, Q):
                raise CallbackContractError(
                    f"{type(extension).__name__} produced {type(predicate).__name__}, expected Q"
                )
            collected.append(predicate)
    return collected


class CallableValueFilter:
    """Adapts a plain callable to the value filter interface."""

    def __init__(self, fn):
        self.fn = fn

    def transform(self, value):
        return self.fn(value)


def as_value_filter(obj):
    """Normalize a value filter: an object with ``transform(value)`` or a callable."""
    if callable(getattr(obj, "transform", None)):
        return obj
    if callable(obj):
        return CallableValueFilter(obj)
    raise CallbackContractError(f"Value filter must be callable, got {type(obj).__name__}")
