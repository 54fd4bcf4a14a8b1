"""Unit tests for BaseModel and SequenceCounter.

Uses a concrete test model created via Django's SchemaEditor so we can
exercise the abstract base against a real database.
"""

from __future__ import annotations

import uuid

import pytest
from django.db import connection, models

from modules.core.models import BaseModel, SequenceCounter

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Concrete model for testing (abstract models can't be instantiated)
# ---------------------------------------------------------------------------


class ConcreteBaseModel(BaseModel):
    name = models.CharField(max_length=100)

    class Meta(BaseModel.Meta):
        app_label = "core"
        db_table = "test_concrete_base"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def _test_tables(django_db_setup, django_db_blocker):
    """Create DB tables for concrete test models (idempotent for --reuse-db)."""
    with django_db_blocker.unblock():
        with connection.schema_editor() as editor:
            if ConcreteBaseModel._meta.db_table not in connection.introspection.table_names():
                editor.create_model(ConcreteBaseModel)


@pytest.fixture()
def _use_test_tables(_test_tables):
    """Ensure test tables exist for the BaseModel tests."""


# ---------------------------------------------------------------------------
# BaseModel tests
# ---------------------------------------------------------------------------


@pytest.mark.usefixtures("_use_test_tables")
class TestBaseModel:
    """Tests for UUIDv7 PK and timestamp behaviour."""

    def test_id_is_uuid_version_7(self):
        obj = ConcreteBaseModel.objects.create(name="test")
        assert isinstance(obj.id, uuid.UUID)
        assert obj.id.version == 7

    def test_ids_are_time_ordered(self):
        """UUIDv7 encodes timestamp, so sequential creates yield ordered IDs."""
        a = ConcreteBaseModel.objects.create(name="first")
        b = ConcreteBaseModel.objects.create(name="second")
        assert str(a.id) < str(b.id)

    def test_updated_at_changes_on_save(self):
        obj = ConcreteBaseModel.objects.create(name="original")
        original_updated = obj.updated_at
        obj.name = "modified"
        obj.save()
        obj.refresh_from_db()
        assert obj.updated_at > original_updated

    def test_created_at_does_not_change_on_save(self):
        obj = ConcreteBaseModel.objects.create(name="original")
        original_created = obj.created_at
        obj.name = "modified"
        obj.save()
        obj.refresh_from_db()
        assert obj.created_at == original_created

    def test_save_with_update_fields_includes_updated_at(self):
        """The save() guard must inject updated_at into update_fields."""
        obj = ConcreteBaseModel.objects.create(name="original")
        original_updated = obj.updated_at
        obj.name = "modified"
        obj.save(update_fields=["name"])
        obj.refresh_from_db()
        assert obj.updated_at > original_updated

    def test_id_is_not_editable(self):
        field = ConcreteBaseModel._meta.get_field("id")
        assert field.editable is False


# ---------------------------------------------------------------------------
# SequenceCounter tests
# ---------------------------------------------------------------------------


class TestSequenceCounter:
    """Per-(name, year) gap-free counters."""

    def test_first_value_is_one(self):
        assert SequenceCounter.next_value("invoice", 2026) == 1

    def test_values_increase_by_one(self):
        values = [SequenceCounter.next_value("invoice", 2026) for _ in range(3)]
        assert values == [1, 2, 3]

    def test_counters_are_independent_per_name(self):
        SequenceCounter.next_value("invoice", 2026)
        SequenceCounter.next_value("invoice", 2026)
        assert SequenceCounter.next_value("return", 2026) == 1

    def test_counters_restart_each_year(self):
        SequenceCounter.next_value("refund", 2025)
        SequenceCounter.next_value("refund", 2025)
        assert SequenceCounter.next_value("refund", 2026) == 1

    def test_one_row_per_name_and_year(self):
        for _ in range(4):
            SequenceCounter.next_value("invoice", 2026)
        counter = SequenceCounter.objects.get(name="invoice", year=2026)
        assert counter.value == 4
        assert SequenceCounter.objects.filter(name="invoice").count() == 1
