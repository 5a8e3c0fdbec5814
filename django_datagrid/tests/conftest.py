"""
Pytest configuration for django-datagrid tests.
"""

import os
import sys

import pytest

# Add the package root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings

    if not settings.configured:
        settings.configure(
            SECRET_KEY="test-secret-key",
            DEBUG=True,
            INSTALLED_APPS=[
                "django.contrib.contenttypes",
                "django.contrib.auth",
                "django_datagrid.tests.testapp",
            ],
            DATABASES={
                "default": {
                    "ENGINE": "django.db.backends.sqlite3",
                    "NAME": ":memory:",
                }
            },
            DEFAULT_AUTO_FIELD="django.db.models.BigAutoField",
            USE_TZ=True,
            DJANGO_DATAGRID={},
        )

    import django

    django.setup()


@pytest.fixture(scope="session", autouse=True)
def grid_tables():
    """Create the test app tables once per session."""
    from django.apps import apps
    from django.db import connection

    with connection.schema_editor() as editor:
        for model in apps.get_app_config("testapp").get_models():
            editor.create_model(model)
    yield


@pytest.fixture
def db():
    """Run the test inside a transaction that is rolled back afterwards."""
    from django.db import transaction

    with transaction.atomic():
        yield
        transaction.set_rollback(True)


@pytest.fixture
def settings_override():
    """Override DJANGO_DATAGRID settings for one test."""
    from django.conf import settings
    from django_datagrid.conf import grid_settings

    original = getattr(settings, "DJANGO_DATAGRID", {})

    def apply(**values):
        settings.DJANGO_DATAGRID = dict(original, **values)
        grid_settings.reload()

    yield apply

    settings.DJANGO_DATAGRID = original
    grid_settings.reload()


@pytest.fixture
def sample_data(db):
    """
    Small shop dataset.

    Orders (root) with customers, sales reps (self-referencing managers),
    tags (many-to-many) and lines (reverse one-to-many).
    """
    from django_datagrid.tests.testapp.models import Customer, Employee, Location, Order, OrderLine, Tag

    springfield = Location.objects.create(address="12 Main St", city="Springfield")
    shelbyville = Location.objects.create(address="3 Elm Rd", city="Shelbyville")

    alice = Customer.objects.create(name="Alice", first_name="Alice", email="alice@example.com", location=springfield)
    bob = Customer.objects.create(name="Bob", first_name="Robert", email="bob@example.com", location=shelbyville)
    carol = Customer.objects.create(name="Carol", first_name="Caroline", email="carol@example.com")

    dana = Employee.objects.create(name="Dana")
    evan = Employee.objects.create(name="Evan", manager=dana, mentor=dana)
    finn = Employee.objects.create(name="Finn", manager=evan)

    urgent = Tag.objects.create(label="urgent")
    gift = Tag.objects.create(label="gift")

    o1 = Order.objects.create(reference="A-100", status="paid", amount=50, customer=alice, sales_rep=evan)
    o2 = Order.objects.create(reference="A-101", status="open", amount=20, customer=alice, sales_rep=finn)
    o3 = Order.objects.create(reference="B-200", status="paid", amount=75, customer=bob)
    o4 = Order.objects.create(reference="C-300", status="open", amount=5, customer=carol, sales_rep=dana)
    o1.tags.set([urgent, gift])
    o2.tags.set([gift])

    OrderLine.objects.create(order=o1, product="Widget", quantity=2)
    OrderLine.objects.create(order=o1, product="Gadget", quantity=1)
    OrderLine.objects.create(order=o2, product="Widget", quantity=5)

    return {
        "locations": [springfield, shelbyville],
        "customers": [alice, bob, carol],
        "employees": [dana, evan, finn],
        "tags": [urgent, gift],
        "orders": [o1, o2, o3, o4],
    }
