"""
Django-Datagrid Settings

Configuration is read from Django settings under the DJANGO_DATAGRID key.
All settings have sensible defaults.

Example:
    # settings.py
    DJANGO_DATAGRID = {
        'DEFAULT_JOIN_TYPE': 'left',
        'CASE_INSENSITIVE_SEARCH': True,
        'USE_ROW_ID': True,
        'ROW_ID_PREFIX': 'row_',
    }
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

JOIN_TYPES = ("inner", "left")

DEFAULTS = {
    # Joins
    "DEFAULT_JOIN_TYPE": "inner",  # 'inner' or 'left'
    # Searching
    "CASE_INSENSITIVE_SEARCH": False,
    # Row decoration
    "USE_ROW_ID": False,  # Adds DT_RowId to each row
    "ROW_ID_PREFIX": "",
    "USE_ROW_CLASS": True,  # Adds DT_RowClass when ROW_CLASS is set
    "ROW_CLASS": None,
    # Counting
    "SCOPE_TOTAL_COUNT": True,  # Apply where-extensions to iTotalRecords as well
    # Paging
    "USE_PAGINATOR": True,  # Page over distinct roots when collection columns are joined
}


class GridSettings:
    """
    Attribute access to DJANGO_DATAGRID with defaults filled in.

        from django_datagrid.conf import grid_settings
        grid_settings.DEFAULT_JOIN_TYPE  # 'inner'

    Values are read lazily and cached per attribute; call reload() after
    changing Django settings at runtime.

    Raises:
        AttributeError: For names that are not django-datagrid settings
        ImproperlyConfigured: For a DEFAULT_JOIN_TYPE other than 'inner'/'left'
    """

    def __init__(self, defaults=None):
        self.defaults = defaults or DEFAULTS
        self._cached_attrs = set()

    @property
    def user_settings(self):
        if "_user_settings" not in self.__dict__:
            self.__dict__["_user_settings"] = getattr(settings, "DJANGO_DATAGRID", None) or {}
        return self.__dict__["_user_settings"]

    def __getattr__(self, attr):
        if attr not in self.defaults:
            raise AttributeError(f"Invalid django-datagrid setting: '{attr}'")

        val = self.user_settings.get(attr, self.defaults[attr])
        if attr == "DEFAULT_JOIN_TYPE":
            val = self._join_type(val)

        self._cached_attrs.add(attr)
        setattr(self, attr, val)
        return val

    def _join_type(self, value):
        normalized = str(value).strip().lower()
        if normalized not in JOIN_TYPES:
            raise ImproperlyConfigured(
                f"DJANGO_DATAGRID['DEFAULT_JOIN_TYPE'] must be one of {', '.join(JOIN_TYPES)}, got {value!r}"
            )
        return normalized

    def reload(self):
        """Forget cached values so the next access re-reads Django settings."""
        for attr in self._cached_attrs:
            self.__dict__.pop(attr, None)
        self._cached_attrs.clear()
        self.__dict__.pop("_user_settings", None)


grid_settings = GridSettings(DEFAULTS)
