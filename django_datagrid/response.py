"""
Django-Datagrid Response Utilities

Shapes fetched rows for DataTables and builds the response envelope.

Features:
- DT_RowId / DT_RowClass injection
- Per-column value filters
- Merging of collection-valued sub-rows into grouped structures
- DataTables envelope (sEcho, iTotalRecords, iTotalDisplayRecords, aaData)
"""

from dataclasses import dataclass, field

from django_datagrid.exceptions import CallbackContractError, RequestShapeError, SchemaError

ROW_ID_KEY = "DT_RowId"
ROW_CLASS_KEY = "DT_RowClass"


@dataclass
class ShapeOptions:
    """Row decoration settings for shape_row."""

    root_identifier: str = "id"
    row_id: bool = False
    row_id_prefix: str = ""
    row_class: str = None
    value_filters: dict = field(default_factory=dict)  # raw column path -> [value filter, ...]


def _as_list(value):
    return list(value) if isinstance(value, list) else [value]


def merge_recursive(left, right):
    """
    Merge two mappings, collecting colliding values instead of overwriting.

    Colliding mappings are merged recursively; any other collision is
    concatenated into a list (lists are extended, scalars appended).

    Examples:
        >>> merge_recursive({"amount": 5, "tags": ["a"]}, {"amount": 7, "tags": ["b"]})
        {'amount': [5, 7], 'tags': ['a', 'b']}
    """
    merged = dict(left)
    for key, value in right.items():
        if key not in merged:
            merged[key] = value
        elif isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_recursive(merged[key], value)
        else:
            merged[key] = _as_list(merged[key]) + _as_list(value)
    return merged


def merge_children(children):
    """Merge a list of child mappings into one mapping."""
    merged = {}
    for child in children:
        merged = merge_recursive(merged, child)
    return merged


def _is_mapping_list(value):
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)


def _apply_value_filters(value, value_filters, element_wise=False):
    if element_wise and isinstance(value, list):
        return [_apply_value_filters(item, value_filters) for item in value]
    for value_filter in value_filters:
        value = value_filter.transform(value)
    return value


def _shape_path(node, segments, value_filters, merge_collections):
    if not isinstance(node, dict):
        return node

    key, rest = segments[0], segments[1:]
    shaped = dict(node)
    if not rest:
        shaped[key] = _apply_value_filters(node.get(key), value_filters, element_wise=merge_collections)
        return shaped

    child = node.get(key)
    if merge_collections and _is_mapping_list(child):
        child = merge_children(child)
    shaped[key] = _shape_path(child, rest, value_filters, merge_collections)
    return shaped


def shape_row(raw_row, bindings, options):
    """
    Shape one fetched row for DataTables.

    Does not modify ``raw_row``; returns a new row.

    Steps:
        1. DT_RowClass, when a row class is configured
        2. DT_RowId, as prefix + root identifier
        3. Plain columns: missing fields default to None, then value filters
        4. Columns crossing a collection: lists of child rows met along the
           path are merged into one mapping, then the leaf is treated as in 3
           (value filters run per element when the merged leaf is a list)

    Args:
        raw_row: Nested row dict from the query engine
        bindings: ColumnBinding list for the request
        options: ShapeOptions

    Returns:
        New row dict

    Example:
        >>> shape_row(
        ...     {"id": 1, "orders": [{"amount": 5}, {"amount": 7}]},
        ...     [orders_amount_binding],
        ...     ShapeOptions(),
        ... )
        {'id': 1, 'orders': {'amount': [5, 7]}}
    """
    row = dict(raw_row)

    if options.row_class is not None:
        row[ROW_CLASS_KEY] = options.row_class
    if options.row_id:
        row[ROW_ID_KEY] = f"{options.row_id_prefix}{raw_row.get(options.root_identifier)}"

    for binding in bindings:
        value_filters = options.value_filters.get(binding.raw_path, [])
        row = _shape_path(row, binding.segments, value_filters, binding.contains_collection_hop)

    return row


class GridResponse:
    """
    DataTables response envelope.

    Example:
        >>> GridResponse(echo=3, total_records=10, total_display_records=2, rows=[...]).to_dict()
        {"sEcho": 3, "iTotalRecords": 10, "iTotalDisplayRecords": 2, "aaData": [...]}
    """

    # Map response codes to HTTP status codes
    STATUS_MAP = {
        "OK": 200,
        "BAD_REQUEST": 400,
        "INTERNAL_ERROR": 500,
    }

    MSG_MAP = {
        "OK": "Success",
        "BAD_REQUEST": "Bad request",
        "INTERNAL_ERROR": "Internal server error",
    }

    def __init__(
        self,
        echo=0,
        total_records=0,
        total_display_records=0,
        rows=None,
        columns=None,
        custom_vars=None,
        code="OK",
        error_message=None,
    ):
        self.echo = echo
        self.total_records = total_records
        self.total_display_records = total_display_records
        self.rows = rows if rows is not None else []
        self.columns = columns
        self.custom_vars = custom_vars
        self.code = code
        self.error_message = error_message

    @property
    def success(self):
        return self.code == "OK"

    @property
    def http_status(self):
        return self.STATUS_MAP.get(self.code, 500)

    @classmethod
    def error(cls, code, message=None, echo=0):
        """Create an error response."""
        return cls(echo=echo, code=code, error_message=message or cls.MSG_MAP.get(code))

    @classmethod
    def from_exception(cls, exc, echo=0):
        """Map a django-datagrid error to an error response."""
        if isinstance(exc, (SchemaError, RequestShapeError)):
            return cls.error("BAD_REQUEST", str(exc), echo=echo)
        if isinstance(exc, CallbackContractError):
            return cls.error("INTERNAL_ERROR", str(exc), echo=echo)
        return cls.error("INTERNAL_ERROR", echo=echo)

    def to_dict(self):
        """Convert to the DataTables wire format."""
        result = {
            "sEcho": int(self.echo),
            "iTotalRecords": self.total_records,
            "iTotalDisplayRecords": self.total_display_records,
            "aaData": self.rows,
        }
        if self.columns is not None:
            result["aoColumns"] = self.columns
        if self.custom_vars is not None:
            result["aoCustomVars"] = self.custom_vars
        if not self.success:
            result["error"] = self.error_message
        return result
