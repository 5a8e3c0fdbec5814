"""
Django-Datagrid Column Resolution

Resolves dotted column paths (e.g. "customer.location.address") against
the model schema, one association per dot, registering the joins each
path needs along the way.
"""

from dataclasses import dataclass, field

from django_datagrid.exceptions import SchemaError
from django_datagrid.fields import camelize, lower_first, normalize_name


@dataclass
class ColumnRequest:
    """One requested grid column, in client order."""

    raw_path: str
    index: int
    searchable: bool = True
    sortable: bool = True
    search_value: str = ""


@dataclass
class ColumnBinding:
    """Schema-resolved form of a ColumnRequest."""

    raw_path: str
    entity_alias: str  # alias of the join/table that owns the field
    field_name: str  # camelized leaf field, e.g. "FirstName"
    join_alias: str  # alias of the last join reached (root alias for plain fields)
    contains_collection_hop: bool = False
    segments: list = field(default_factory=list)

    @property
    def attribute(self):
        return lower_first(self.field_name)

    @property
    def fully_qualified_name(self):
        return f"{self.join_alias}.{self.attribute}"


def resolve_column(schema, registry, raw_path):
    """
    Resolve a column path into a ColumnBinding.

    Every segment but the last is an association hop; the last one must be
    a scalar field on the model reached by the final hop. Joins are
    registered on ``registry`` as hops are walked.

    Args:
        schema: Schema metadata provider (e.g. ModelSchema)
        registry: JoinRegistry for the current request
        raw_path: Dotted column path as sent by the client

    Returns:
        ColumnBinding

    Raises:
        SchemaError: If an association or the leaf field does not exist

    Examples:
        >>> resolve_column(model_schema, registry, "reference").fully_qualified_name
        'order.reference'
        >>> resolve_column(model_schema, registry, "customer.location.city").fully_qualified_name
        'location.city'
    """
    segments = raw_path.split(".")
    if not all(segments):
        raise SchemaError(f"Invalid column path '{raw_path}'", path=raw_path)

    *hops, leaf = segments
    model = registry.root_model
    alias = registry.root_alias
    entity_alias = registry.root_alias
    contains_collection = False
    walked = []

    for hop in hops:
        association = normalize_name(hop)
        walked.append(hop)
        if not schema.has_association(model, association):
            raise SchemaError(
                f"Association '{association}' not found ({raw_path})",
                path=raw_path,
                hop=hop,
            )
        collection = schema.is_collection_association(model, association)
        if collection:
            contains_collection = True
        target = schema.association_target(model, association)
        alias = registry.register(
            alias,
            association,
            target,
            key=hop,
            path=".".join(walked),
            column_path=raw_path,
            collection=collection,
        )
        model = target
        entity_alias = alias

    field_name = camelize(leaf)
    if not schema.has_field(model, lower_first(field_name)):
        if hops:
            message = f"Field '{field_name}' on association '{entity_alias}' not found ({raw_path})"
        else:
            message = f"Field '{field_name}' not found ({raw_path})"
        raise SchemaError(message, path=raw_path, hop=leaf)

    return ColumnBinding(
        raw_path=raw_path,
        entity_alias=entity_alias,
        field_name=field_name,
        join_alias=alias,
        contains_collection_hop=contains_collection,
        segments=segments,
    )


def resolve_columns(schema, registry, columns):
    """Resolve every ColumnRequest in order. Returns a list of ColumnBinding."""
    return [resolve_column(schema, registry, column.raw_path) for column in columns]
