"""
Django-Datagrid: DataTables server-side processing for Django

Turns DataTables paging/sorting/search requests into Django ORM queries,
including columns that reach into related models through dotted paths
(e.g. "customer.location.city") and collection-valued relations.

Example:
    from django_datagrid import Datagrid

    response = Datagrid(Order, request.GET).get_search_results()
    return JsonResponse(response.to_dict())
"""

__version__ = "0.4.0"

# Request handling
from django_datagrid.datagrid import Datagrid, GridColumn, GridRequest, get_datagrid, parse_request

# Column resolution and planning
from django_datagrid.columns import ColumnBinding, ColumnRequest, resolve_column, resolve_columns
from django_datagrid.joins import JoinKind, JoinRegistry, JoinSpec
from django_datagrid.plan import QueryPlan, CountPlan, build_plan, build_count_plans

# Schema metadata
from django_datagrid.fields import ModelSchema, model_schema, camelize, lower_first

# Extensions
from django_datagrid.filters import (
    WhereExtension,
    PredicateCollection,
    FilterExtension,
    build_q_object,
)

# Execution
from django_datagrid.query import DjangoQueryEngine, get_model_by_name

# Response utilities
from django_datagrid.response import GridResponse, ShapeOptions, shape_row, merge_recursive

# Errors
from django_datagrid.exceptions import (
    DatagridError,
    SchemaError,
    RequestShapeError,
    CallbackContractError,
    ExecutionError,
)

# Configuration
from django_datagrid.conf import grid_settings

__all__ = [
    # Version
    "__version__",
    # Request handling
    "Datagrid",
    "GridColumn",
    "GridRequest",
    "get_datagrid",
    "parse_request",
    # Columns and planning
    "ColumnBinding",
    "ColumnRequest",
    "resolve_column",
    "resolve_columns",
    "JoinKind",
    "JoinRegistry",
    "JoinSpec",
    "QueryPlan",
    "CountPlan",
    "build_plan",
    "build_count_plans",
    # Schema
    "ModelSchema",
    "model_schema",
    "camelize",
    "lower_first",
    # Extensions
    "WhereExtension",
    "PredicateCollection",
    "FilterExtension",
    "build_q_object",
    # Execution
    "DjangoQueryEngine",
    "get_model_by_name",
    # Response
    "GridResponse",
    "ShapeOptions",
    "shape_row",
    "merge_recursive",
    # Errors
    "DatagridError",
    "SchemaError",
    "RequestShapeError",
    "CallbackContractError",
    "ExecutionError",
    # Settings
    "grid_settings",
]
