"""
Django-Datagrid Field Utilities

Naming helpers and model introspection used to resolve grid column paths.

Features:
- camelize / lower_first name normalization
- Model field and relation introspection
- ModelSchema: schema metadata provider over Django's model _meta
"""

import re
from functools import lru_cache


def camelize(value):
    """
    Camelize a name, upper-casing the first letter of every word.

    Underscores and whitespace separate words. Letters after the first
    one in a word are left untouched.

    Examples:
        >>> camelize("first_name")
        'FirstName'
        >>> camelize("firstName")
        'FirstName'
        >>> camelize("customer")
        'Customer'
    """
    return "".join(word[:1].upper() + word[1:] for word in re.split(r"[_\s]+", value) if word)


def lower_first(value):
    """
    Lower-case the first character only.

    Examples:
        >>> lower_first("FirstName")
        'firstName'
        >>> lower_first("ID")
        'iD'
    """
    return value[:1].lower() + value[1:]


def normalize_name(value):
    """Normalize a path segment or model attribute name to lower camel case."""
    return lower_first(camelize(value))


def get_model_fields(model):
    """
    Get list of scalar field names for a model.

    Only returns fields with database columns that are not relations.
    The primary key is always included, even when it is itself a relation
    (multi-table inheritance parent links).

    Args:
        model: Django model class

    Returns:
        List of field names

    Example:
        >>> get_model_fields(Customer)
        ['id', 'name', 'email']
    """
    pk = model._meta.pk
    fields = []
    for field in model._meta.get_fields():
        if not getattr(field, "column", None):
            continue
        if field.is_relation and field is not pk:
            continue
        fields.append(field.name)
    return fields


def get_model_relations(model):
    """
    Get dict of relation query name -> (related model, is collection).

    Includes forward relations (ForeignKey, OneToOneField, ManyToManyField)
    and reverse relations. Generic relations without a concrete related
    model are skipped.

    Args:
        model: Django model class

    Returns:
        Dict mapping relation name to (related model class, bool)

    Example:
        >>> get_model_relations(Customer)
        {'orders': (<class 'Order'>, True), 'location': (<class 'Location'>, False)}
    """
    relations = {}
    for field in model._meta.get_fields():
        if not field.is_relation or field.related_model is None:
            continue
        collection = bool(field.one_to_many or field.many_to_many)
        relations[field.name] = (field.related_model, collection)
    return relations


def get_identifier_fields(model):
    """Get the primary key field names of a model (single-column keys in Django)."""
    return [model._meta.pk.name]


@lru_cache(maxsize=None)
def _model_index(model):
    """
    Build the normalized lookup index for a model.

    Keys are lower-camel names; values are the Django names to query with.
    """
    fields = {normalize_name(name): name for name in get_model_fields(model)}
    associations = {}
    for name, (target, collection) in get_model_relations(model).items():
        associations[normalize_name(name)] = (name, target, collection)
    return {"fields": fields, "associations": associations}


class ModelSchema:
    """
    Schema metadata provider backed by Django model metadata.

    Entity types are Django model classes. All names passed in are the
    lower-camel normalized form of a column path segment, so a model field
    ``first_name`` is found as ``firstName`` (and as ``first_name``, which
    normalizes to the same thing).

    The per-model index is cached process-wide and never mutated after it
    is built, so one instance can be shared between concurrent requests.
    """

    def has_association(self, model, name):
        return name in _model_index(model)["associations"]

    def is_collection_association(self, model, name):
        return _model_index(model)["associations"][name][2]

    def association_target(self, model, name):
        return _model_index(model)["associations"][name][1]

    def has_field(self, model, name):
        return name in _model_index(model)["fields"]

    def identifier_field_names(self, model):
        return [normalize_name(name) for name in get_identifier_fields(model)]

    def table_name(self, model):
        """
        Table name without Django's default ``<app_label>_`` prefix.

        Example:
            >>> ModelSchema().table_name(Customer)  # db_table 'testapp_customer'
            'customer'
        """
        opts = model._meta
        prefix = f"{opts.app_label}_"
        table = opts.db_table
        if table.startswith(prefix) and len(table) > len(prefix):
            table = table[len(prefix) :]
        return table

    def orm_name(self, model, name):
        """Map a normalized field or association name to its Django query name."""
        index = _model_index(model)
        if name in index["fields"]:
            return index["fields"][name]
        return index["associations"][name][0]


model_schema = ModelSchema()
