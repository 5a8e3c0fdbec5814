"""
Tests for django_datagrid.query (ORM execution and hydration).
"""

from unittest.mock import MagicMock, patch

import pytest
from django.db import DatabaseError
from django.db.models import Q

from django_datagrid.exceptions import ExecutionError
from django_datagrid.filters import FilterExtension, as_extension
from django_datagrid.plan import PageWindow, build_count_plans
from django_datagrid.query import DjangoQueryEngine, get_model_by_name
from django_datagrid.tests.helpers import plan_for
from django_datagrid.tests.testapp.models import Employee, Order


@pytest.fixture
def engine():
    return DjangoQueryEngine()


class TestGetModelByName:
    def test_app_label_form(self):
        assert get_model_by_name("testapp.Order") is Order

    def test_bare_name_is_case_insensitive(self):
        assert get_model_by_name("order") is Order
        assert get_model_by_name("EMPLOYEE") is Employee

    def test_unknown(self):
        assert get_model_by_name("testapp.Planet") is None
        assert get_model_by_name("planet") is None
        assert get_model_by_name("nosuchapp.Order") is None


class TestFetchToOne:
    def test_inner_join_rows(self, engine, sample_data):
        o1, o2, o3, o4 = sample_data["orders"]
        alice = sample_data["customers"][0]

        rows = engine.fetch(plan_for("reference", "customer.name"))

        assert [row["reference"] for row in rows] == ["A-100", "A-101", "B-200", "C-300"]
        assert rows[0] == {
            "id": o1.id,
            "reference": "A-100",
            "customer": {"id": alice.id, "name": "Alice"},
        }

    def test_inner_join_drops_unmatched_roots(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "sales_rep.name"))

        assert [row["reference"] for row in rows] == ["A-100", "A-101", "C-300"]
        assert rows[0]["sales_rep"]["name"] == "Evan"

    def test_left_join_keeps_unmatched_roots(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "sales_rep.name", default_kind="left"))

        assert len(rows) == 4
        assert rows[2]["reference"] == "B-200"
        assert rows[2]["sales_rep"] is None

    def test_nested_left_join(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "customer.location.city", join_kinds={"customer.location": "left"}))

        assert len(rows) == 4
        assert rows[0]["customer"]["location"]["city"] == "Springfield"
        assert rows[3]["customer"]["location"] is None

    def test_nested_inner_join(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "customer.location.city"))

        assert [row["reference"] for row in rows] == ["A-100", "A-101", "B-200"]

    def test_snake_case_keys(self, engine, sample_data):
        rows = engine.fetch(plan_for("customer.first_name"))

        assert rows[2]["customer"]["first_name"] == "Robert"

    def test_every_spelling_gets_the_value(self, engine, sample_data):
        rows = engine.fetch(plan_for("customer.first_name", "customer.firstName"))

        assert rows[0]["customer"]["first_name"] == "Alice"
        assert rows[0]["customer"]["firstName"] == "Alice"

    def test_every_join_spelling_gets_the_node(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "sales_rep.name", "salesRep.name", default_kind="left"))

        assert rows[0]["sales_rep"] == rows[0]["salesRep"] == {"id": sample_data["employees"][1].id, "name": "Evan"}
        assert rows[2]["sales_rep"] is None
        assert rows[2]["salesRep"] is None

    def test_self_reference(self, engine, sample_data):
        rows = engine.fetch(plan_for("name", "manager.name", model=Employee, default_kind="left"))

        assert [(row["name"], row["manager"] and row["manager"]["name"]) for row in rows] == [
            ("Dana", None),
            ("Evan", "Dana"),
            ("Finn", "Evan"),
        ]

    def test_ordering(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "customer.name", sorting=[(1, "desc"), (0, "desc")]))

        assert [row["reference"] for row in rows] == ["C-300", "B-200", "A-101", "A-100"]

    def test_paging(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", page=PageWindow(1, 2)))

        assert [row["reference"] for row in rows] == ["A-101", "B-200"]


class TestFetchCollections:
    def test_left_join_collection(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "tags.label", default_kind="left"))

        assert len(rows) == 4
        assert sorted(tag["label"] for tag in rows[0]["tags"]) == ["gift", "urgent"]
        assert [tag["label"] for tag in rows[1]["tags"]] == ["gift"]
        assert rows[2]["tags"] == []
        assert rows[3]["tags"] == []

    def test_inner_join_collection(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "tags.label"))

        assert [row["reference"] for row in rows] == ["A-100", "A-101"]

    def test_two_collections_are_deduplicated(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "lines.product", "tags.label", default_kind="left"))

        first = rows[0]
        assert sorted(line["product"] for line in first["lines"]) == ["Gadget", "Widget"]
        assert sorted(tag["label"] for tag in first["tags"]) == ["gift", "urgent"]

    def test_page_counts_root_records(self, engine, sample_data):
        plan = plan_for("reference", "lines.product", "lines.quantity", page=PageWindow(0, 1))

        rows = engine.fetch(plan)

        assert len(rows) == 1
        assert rows[0]["reference"] == "A-100"
        assert sorted((line["product"], line["quantity"]) for line in rows[0]["lines"]) == [
            ("Gadget", 1),
            ("Widget", 2),
        ]

    def test_second_page(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "lines.product", page=PageWindow(1, 1)))

        assert [row["reference"] for row in rows] == ["A-101"]
        assert rows[0]["lines"] == [{"id": rows[0]["lines"][0]["id"], "product": "Widget"}]

    def test_children_with_equal_values_are_kept(self, engine, sample_data):
        from django_datagrid.tests.testapp.models import Customer

        alice = sample_data["customers"][0]
        Order.objects.filter(customer=alice).update(amount=10)

        plan = plan_for("id", "orders.amount", "orders.id", model=Customer)
        rows = engine.fetch(plan)

        assert plan.select["order"] == ["id", "amount"]
        assert sorted(order["id"] for order in rows[0]["orders"]) == sorted(o.id for o in alice.orders.all())
        assert [order["amount"] for order in rows[0]["orders"]] == [10, 10]

    @pytest.mark.parametrize("direction", ["asc", "desc"])
    def test_pages_sorted_by_collection_do_not_repeat(self, engine, sample_data, direction):
        pages = []
        for start in range(3):
            plan = plan_for("reference", "tags.label", sorting=[(1, direction)], page=PageWindow(start, 1))
            pages.append([row["reference"] for row in engine.fetch(plan)])

        assert pages == [["A-100"], ["A-101"], []]

    def test_sort_by_collection_uses_smallest_or_largest_child(self, engine, sample_data):
        urgent, gift = sample_data["tags"]
        o3 = sample_data["orders"][2]
        o3.tags.set([urgent])

        ascending = engine.fetch(plan_for("reference", "tags.label", sorting=[(1, "asc")], page=PageWindow(0, 10)))
        descending = engine.fetch(plan_for("reference", "tags.label", sorting=[(1, "desc")], page=PageWindow(0, 10)))

        assert [row["reference"] for row in ascending] == ["A-100", "A-101", "B-200"]
        assert [row["reference"] for row in descending] == ["A-100", "B-200", "A-101"]

    def test_paging_joined_records(self, engine, sample_data):
        plan = plan_for("reference", "lines.product", page=PageWindow(0, 1), paginate_roots=False)

        rows = engine.fetch(plan)

        assert len(rows) == 1
        assert rows[0]["reference"] == "A-100"
        assert len(rows[0]["lines"]) == 1

    def test_reverse_collection_from_customer(self, engine, sample_data):
        from django_datagrid.tests.testapp.models import Customer

        rows = engine.fetch(plan_for("name", "orders.reference", model=Customer))

        assert [row["name"] for row in rows] == ["Alice", "Bob", "Carol"]
        assert sorted(order["reference"] for order in rows[0]["orders"]) == ["A-100", "A-101"]


class TestSearchAndExtensions:
    def test_global_search(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "status", search="A-10"))

        assert [row["reference"] for row in rows] == ["A-100", "A-101"]

    def test_global_search_is_or(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "customer.name", search="Bob"))

        assert [row["reference"] for row in rows] == ["B-200"]

    def test_column_search_is_and(self, engine, sample_data):
        plan = plan_for("reference", "status", search_values={0: "A-", 1: "open"})

        assert [row["reference"] for row in engine.fetch(plan)] == ["A-101"]

    def test_search_over_collection(self, engine, sample_data):
        rows = engine.fetch(plan_for("reference", "tags.label", search="urgent"))

        assert [row["reference"] for row in rows] == ["A-100"]

    def test_case_insensitive_search(self, engine, sample_data):
        rows = engine.fetch(plan_for("customer.name", search="CAROL", case_insensitive=True))

        assert [row["customer"]["name"] for row in rows] == ["Carol"]

    def test_filter_extension(self, engine, sample_data):
        plan = plan_for("reference", extensions=[FilterExtension({"status": "paid"})])

        assert [row["reference"] for row in engine.fetch(plan)] == ["A-100", "B-200"]

    def test_extension_uses_plan_lookup(self, engine, sample_data):
        extension = as_extension(lambda plan: Q(**{plan.lookup("customer.name"): "Alice"}))
        plan = plan_for("reference", "customer.name", extensions=[extension])

        assert [row["reference"] for row in engine.fetch(plan)] == ["A-100", "A-101"]


class TestCount:
    def test_total_and_filtered(self, engine, sample_data):
        plan = plan_for("reference", "sales_rep.name")
        total, filtered = build_count_plans(plan)

        assert engine.count(total) == 4
        assert engine.count(filtered) == 3

    def test_collections_count_distinct_roots(self, engine, sample_data):
        total, filtered = build_count_plans(plan_for("reference", "tags.label"))

        assert engine.count(filtered) == 2

    def test_search_filters_only_filtered_count(self, engine, sample_data):
        total, filtered = build_count_plans(plan_for("reference", search="B-"))

        assert engine.count(total) == 4
        assert engine.count(filtered) == 1

    def test_scoped_total(self, engine, sample_data):
        plan = plan_for("reference", extensions=[FilterExtension({"status": "open"})])

        total, filtered = build_count_plans(plan)
        assert engine.count(total) == 2

        total, filtered = build_count_plans(plan, scope_total=False)
        assert engine.count(total) == 4
        assert engine.count(filtered) == 2


class TestExecutionErrors:
    def test_fetch_wraps_database_errors(self, engine):
        class BrokenQuery:
            def __iter__(self):
                raise DatabaseError("no such table")

        with pytest.raises(ExecutionError) as exc_info:
            engine._evaluate(BrokenQuery())

        assert isinstance(exc_info.value.__cause__, DatabaseError)

    def test_count_wraps_database_errors(self, engine):
        total, _ = build_count_plans(plan_for("reference"))
        queryset = MagicMock()
        queryset.filter.return_value.aggregate.side_effect = DatabaseError("locked")

        with patch.object(DjangoQueryEngine, "queryset", return_value=queryset):
            with pytest.raises(ExecutionError) as exc_info:
                engine.count(total)

        assert "locked" in str(exc_info.value)
