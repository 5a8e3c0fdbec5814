"""
Shared helpers for django-datagrid tests.
"""


def grid_params(*paths, **extra):
    """
    Build client-declared DataTables parameters.

    Every column is searchable and sortable unless overridden through
    extra keys (e.g. bSearchable_1="false").
    """
    params = {
        "sEcho": "1",
        "iColumns": str(len(paths)),
        "sSearch": "",
        "iDisplayStart": "0",
        "iDisplayLength": "10",
        "iSortingCols": "0",
    }
    for i, path in enumerate(paths):
        params[f"mDataProp_{i}"] = path
        params[f"bSearchable_{i}"] = "true"
        params[f"bSortable_{i}"] = "true"
        params[f"sSearch_{i}"] = ""
    params.update(extra)
    return params


def plan_for(*paths, model=None, searchable=None, sortable=None, search_values=None, **kwargs):
    """
    Resolve ``paths`` against ``model`` (Order by default) and build a plan.

    ``default_kind`` and ``join_kinds`` ({path: kind}) configure the join
    registry; remaining keyword arguments go to build_plan.
    """
    from django_datagrid.columns import ColumnRequest, resolve_columns
    from django_datagrid.fields import model_schema
    from django_datagrid.joins import JoinKind, JoinRegistry
    from django_datagrid.plan import build_plan
    from django_datagrid.tests.testapp.models import Order

    registry = JoinRegistry(model_schema, model or Order, kwargs.pop("default_kind", JoinKind.INNER))
    for path, kind in kwargs.pop("join_kinds", {}).items():
        registry.set_join_kind(path, kind)

    columns = []
    for i, path in enumerate(paths):
        columns.append(
            ColumnRequest(
                raw_path=path,
                index=i,
                searchable=True if searchable is None else searchable[i],
                sortable=True if sortable is None else sortable[i],
                search_value=(search_values or {}).get(i, ""),
            )
        )
    bindings = resolve_columns(model_schema, registry, columns)
    return build_plan(model_schema, registry, columns, bindings, **kwargs)
