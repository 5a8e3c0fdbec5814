"""
Django-Datagrid Request Handling

Ties request parsing, column resolution, plan building, execution and
row shaping together into one DataTables response.

Provides:
- Datagrid class for OOP-style usage
- get_datagrid factory accepting a model class or name
- parse_request for turning DataTables parameters into a GridRequest
"""

import logging
from dataclasses import dataclass, field

from django_datagrid.columns import ColumnRequest, resolve_columns
from django_datagrid.conf import grid_settings
from django_datagrid.exceptions import RequestShapeError, SchemaError
from django_datagrid.fields import model_schema
from django_datagrid.filters import FilterExtension, PredicateCollection, as_extension, as_value_filter
from django_datagrid.joins import JoinKind, JoinRegistry
from django_datagrid.plan import PageWindow, build_count_plans, build_plan
from django_datagrid.query import DjangoQueryEngine, get_model_by_name
from django_datagrid.response import GridResponse, ShapeOptions, shape_row


logger = logging.getLogger("django_datagrid")

# Keys a client must send when the server declares the columns
REQUIRED_KEYS = ("sEcho", "iDisplayStart", "iDisplayLength", "iSortingCols")


@dataclass
class GridColumn:
    """A server-declared column."""

    path: str
    searchable: bool = True
    sortable: bool = True
    title: str = None

    def to_dict(self):
        return {
            "mData": self.path,
            "sTitle": self.title if self.title is not None else self.path,
            "bSearchable": self.searchable,
            "bSortable": self.sortable,
        }


@dataclass
class GridRequest:
    """Parsed DataTables request."""

    echo: int = 0
    search: str = ""
    display_start: int = 0
    display_length: int = -1
    columns: list = field(default_factory=list)
    sorting: list = field(default_factory=list)  # [(column index, direction)]

    @property
    def page(self):
        return PageWindow(self.display_start, self.display_length)


def _flag(value):
    return str(value).lower() == "true"


def _int_param(params, key, default):
    raw = params.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise RequestShapeError(f"'{key}' must be an integer, got {raw!r}")


def parse_request(params, columns=None):
    """
    Parse DataTables request parameters.

    Args:
        params: Mapping of request parameters (dict or QueryDict)
        columns: Server-declared GridColumn list, or None when the client
            declares the columns through iColumns/mDataProp_i

    Returns:
        GridRequest

    Raises:
        RequestShapeError: On missing or malformed parameters

    Example:
        >>> parse_request({"iColumns": "1", "mDataProp_0": "id", "sEcho": "3"}).columns
        [ColumnRequest(raw_path='id', index=0, searchable=False, sortable=False, search_value='')]
    """
    if columns is None:
        raw_count = params.get("iColumns")
        if raw_count is None or not str(raw_count).strip().isdigit():
            raise RequestShapeError(f"'iColumns' must be numeric, got {raw_count!r}")
        column_requests = []
        for i in range(int(raw_count)):
            path = params.get(f"mDataProp_{i}")
            if not path:
                raise RequestShapeError(f"Missing 'mDataProp_{i}'", missing=[f"mDataProp_{i}"])
            column_requests.append(
                ColumnRequest(
                    raw_path=path,
                    index=i,
                    searchable=_flag(params.get(f"bSearchable_{i}")),
                    sortable=_flag(params.get(f"bSortable_{i}")),
                    search_value=params.get(f"sSearch_{i}") or "",
                )
            )
    else:
        missing = [key for key in REQUIRED_KEYS if params.get(key) is None]
        if missing:
            raise RequestShapeError(f"Missing required parameters: {', '.join(missing)}", missing=missing)
        column_requests = [
            ColumnRequest(
                raw_path=column.path,
                index=i,
                searchable=column.searchable,
                sortable=column.sortable,
                search_value=params.get(f"sSearch_{i}") or "",
            )
            for i, column in enumerate(columns)
        ]

    sorting = []
    for i in range(_int_param(params, "iSortingCols", 0)):
        index = _int_param(params, f"iSortCol_{i}", None)
        if index is not None:
            sorting.append((index, params.get(f"sSortDir_{i}") or "asc"))

    display_start = _int_param(params, "iDisplayStart", 0)
    display_length = _int_param(params, "iDisplayLength", -1)
    if display_start < 0:
        raise RequestShapeError(f"'iDisplayStart' must not be negative, got {display_start}")
    if display_length < -1:
        raise RequestShapeError(f"'iDisplayLength' must be -1 or more, got {display_length}")

    return GridRequest(
        echo=_int_param(params, "sEcho", 0),
        search=params.get("sSearch") or "",
        display_start=display_start,
        display_length=display_length,
        columns=column_requests,
        sorting=sorting,
    )


class Datagrid:
    """
    Server-side processing for one DataTables request.

    Example:
        # Client-declared columns
        response = Datagrid(Order, request.GET).get_search_results()
        return JsonResponse(response.to_dict())

        # Server-declared columns, left joins, tenant scoping
        grid = (
            Datagrid(Order, request.GET)
            .add_column("reference", title="Reference")
            .add_column("customer.name", title="Customer")
            .set_default_join_type("left")
            .add_where_extension(lambda plan: Q(customer__company=request.user.company))
        )
        response = grid.get_search_results()
    """

    def __init__(self, model, params, schema=None, engine=None):
        """
        Initialize a Datagrid.

        Args:
            model: Django model class of the root entity
            params: DataTables request parameters (dict or QueryDict)
            schema: Optional schema metadata provider
            engine: Optional query engine (defaults to DjangoQueryEngine)
        """
        self.model = model
        self.params = params if params is not None else {}
        self.schema = schema or model_schema
        self.engine = engine or DjangoQueryEngine(self.schema)

        self.default_join_kind = JoinKind.parse(grid_settings.DEFAULT_JOIN_TYPE)
        self.case_insensitive = bool(grid_settings.CASE_INSENSITIVE_SEARCH)
        self.row_id = bool(grid_settings.USE_ROW_ID)
        self.row_id_prefix = grid_settings.ROW_ID_PREFIX or ""
        self.row_class_enabled = bool(grid_settings.USE_ROW_CLASS)
        self.row_class = grid_settings.ROW_CLASS
        self.scope_total = bool(grid_settings.SCOPE_TOTAL_COUNT)
        self.paginate_roots = bool(grid_settings.USE_PAGINATOR)

        self.columns = None
        self.custom_vars = {}
        self.join_kinds = {}
        self.extensions = []
        self.value_filters = {}
        self._request = None

    # Configuration

    def use_row_id(self, enabled, prefix=None):
        """Add DT_RowId (optionally prefixed) to each row."""
        self.row_id = bool(enabled)
        if prefix is not None:
            self.row_id_prefix = prefix
        return self

    def use_row_class(self, enabled):
        """Add DT_RowClass to each row when a row class is set."""
        self.row_class_enabled = bool(enabled)
        return self

    def set_row_class(self, row_class):
        self.row_class = row_class
        return self

    def set_default_join_type(self, join_type):
        """Set the join kind for all joins ('inner' or 'left')."""
        self.default_join_kind = JoinKind.parse(join_type)
        return self

    def set_join_type(self, path, join_type):
        """Set the join kind for joins reached through a column path or path prefix."""
        self.join_kinds[path] = JoinKind.parse(join_type)
        return self

    def case_insensitive_search(self, enabled):
        self.case_insensitive = bool(enabled)
        return self

    def scope_total_count(self, enabled):
        """Whether where-extensions also restrict iTotalRecords."""
        self.scope_total = bool(enabled)
        return self

    def use_paginator(self, enabled):
        """
        Page over distinct root records when collection columns are joined.

        When disabled, the paging window counts joined records, so a root
        with several children can fill a page on its own.
        """
        self.paginate_roots = bool(enabled)
        return self

    def add_column(self, path, searchable=True, sortable=True, title=None):
        """Declare a column server-side. Switches the grid to server-declared columns."""
        if self.columns is None:
            self.columns = []
        self.columns.append(GridColumn(path, searchable, sortable, title))
        self._request = None
        return self

    def set_custom_var(self, name, value):
        self.custom_vars[name] = value
        return self

    def add_where_extension(self, extension):
        """Add a WhereExtension or a callable ``fn(plan) -> Q | [Q] | None``."""
        self.extensions.append(as_extension(extension))
        return self

    def add_filters(self, filters):
        """Add a declarative filter dict, e.g. {"status": "paid"}."""
        return self.add_where_extension(FilterExtension(filters))

    def add_predicates(self, predicates):
        """Add a precomputed list of Q objects."""
        return self.add_where_extension(PredicateCollection(predicates))

    def add_value_filter(self, path, value_filter):
        """Transform values of the column with this raw path, in registration order."""
        self.value_filters.setdefault(path, []).append(as_value_filter(value_filter))
        return self

    # Execution

    def get_request(self):
        if self._request is None:
            self._request = parse_request(self.params, self.columns)
        return self._request

    def build(self):
        """
        Resolve columns and build the query plan.

        Returns:
            Tuple of (QueryPlan, list of ColumnBinding)
        """
        request = self.get_request()
        registry = JoinRegistry(self.schema, self.model, self.default_join_kind)
        for path, kind in self.join_kinds.items():
            registry.set_join_kind(path, kind)

        bindings = resolve_columns(self.schema, registry, request.columns)
        plan = build_plan(
            self.schema,
            registry,
            request.columns,
            bindings,
            search=request.search,
            sorting=request.sorting,
            page=request.page,
            extensions=self.extensions,
            case_insensitive=self.case_insensitive,
            paginate_roots=self.paginate_roots,
        )
        return plan, bindings

    def shape_options(self, plan):
        return ShapeOptions(
            root_identifier=plan.root_identifier,
            row_id=self.row_id,
            row_id_prefix=self.row_id_prefix,
            row_class=self.row_class if self.row_class_enabled else None,
            value_filters=self.value_filters,
        )

    def get_search_results(self):
        """
        Run the grid request.

        Returns:
            GridResponse

        Raises:
            RequestShapeError, SchemaError: Invalid request for this model
            CallbackContractError: An extension or value filter misbehaved
            ExecutionError: The query engine failed
        """
        request = self.get_request()
        plan, bindings = self.build()

        rows = self.engine.fetch(plan)
        options = self.shape_options(plan)
        data = [shape_row(row, bindings, options) for row in rows]

        total_plan, filtered_plan = build_count_plans(plan, scope_total=self.scope_total)
        total = self.engine.count(total_plan)
        filtered = self.engine.count(filtered_plan)
        logger.debug(
            "Grid %s: echo=%s total=%d filtered=%d rows=%d",
            self.model.__name__,
            request.echo,
            total,
            filtered,
            len(data),
        )

        server_declared = self.columns is not None
        return GridResponse(
            echo=request.echo,
            total_records=total,
            total_display_records=filtered,
            rows=data,
            columns=[column.to_dict() for column in self.columns] if server_declared else None,
            custom_vars=dict(self.custom_vars) if server_declared else None,
        )


def get_datagrid(model, params, schema=None, engine=None):
    """
    Create a Datagrid for a model class or model name.

    Args:
        model: Django model class, "app_label.Model" or a bare model name
        params: DataTables request parameters
        schema: Optional schema metadata provider
        engine: Optional query engine

    Returns:
        Datagrid

    Raises:
        SchemaError: If the model name does not match an installed model

    Example:
        response = get_datagrid("shop.Order", request.GET).get_search_results()
    """
    if isinstance(model, str):
        model_class = get_model_by_name(model)
        if model_class is None:
            raise SchemaError(f"Model '{model}' not found", path=model)
        model = model_class
    return Datagrid(model, params, schema=schema, engine=engine)
