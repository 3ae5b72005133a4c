"""Tests for Model metadata and field selection."""

from __future__ import annotations

import pytest
from conftest import make_user_model
from pydantic import ValidationError

from strata.errors import UnknownFieldError
from strata.models import ALL_FIELDS, Model, ModelCatalog, ReturnType, coerce_fields


class TestModel:
    def test_field_set_membership(self):
        user = make_user_model()
        assert user.field_set == frozenset({"id", "name", "email"})
        assert user.has_field("email")
        assert not user.has_field("age")

    def test_fields_are_normalized(self):
        model = Model(name=" Tag ", fields=[" id", "label ", ""])
        assert model.name == "Tag"
        assert model.fields == ("id", "label")

    def test_primary_key_must_be_a_field(self):
        with pytest.raises(ValidationError, match="Primary key"):
            Model(name="User", primary_key="uuid", fields=["id", "name"])

    def test_custom_primary_key(self):
        model = Model(name="Account", primary_key="slug", fields=["slug", "title"])
        assert model.primary_key == "slug"

    def test_duplicate_fields_rejected(self):
        with pytest.raises(ValidationError, match="unique"):
            Model(name="User", fields=["id", "name", "name"])

    def test_models_are_frozen(self):
        user = make_user_model()
        with pytest.raises(ValidationError):
            user.name = "Other"

    def test_extra_keys_rejected(self):
        with pytest.raises(ValidationError):
            Model(name="User", fields=["id"], table="users")

    def test_assert_fields_exist(self):
        user = make_user_model()
        user.assert_fields_exist(["id", "name"])
        with pytest.raises(UnknownFieldError) as exc_info:
            user.assert_fields_exist(["name", "age", "avatar"])
        assert exc_info.value.fields == ["age", "avatar"]
        assert exc_info.value.model_name == "User"

    def test_getter_reads_field(self):
        get_name = make_user_model().getter("name")
        assert get_name({"id": 1, "name": "works"}) == "works"
        assert get_name(None) is None
        assert get_name.__name__ == "get_name"

    def test_getter_unknown_field(self):
        with pytest.raises(UnknownFieldError):
            make_user_model().getter("age")

    def test_query_helpers(self):
        user = make_user_model()
        query = user.get_item({"id": 1}, ["name"])
        assert query.return_type is ReturnType.ITEM
        assert query.fields == frozenset({"name"})
        assert user.get_list().return_type is ReturnType.LIST

    def test_provider_return_helpers(self):
        user = make_user_model()
        assert user.as_item().fields == ALL_FIELDS
        assert user.as_list(["id", "name"]).fields == frozenset({"id", "name"})
        with pytest.raises(UnknownFieldError):
            user.as_item(["id", "age"])


class TestCoerceFields:
    def test_star_and_none_mean_all(self):
        assert coerce_fields("*") == ALL_FIELDS
        assert coerce_fields(None) == ALL_FIELDS

    def test_single_string_is_one_field(self):
        assert coerce_fields("name") == frozenset({"name"})

    def test_iterable(self):
        assert coerce_fields(["id", " name "]) == frozenset({"id", "name"})

    def test_empty_rejected(self):
        with pytest.raises(ValueError, match="non-empty"):
            coerce_fields([])

    def test_non_iterable_rejected(self):
        with pytest.raises(TypeError, match="Unknown field type"):
            coerce_fields(42)


class TestModelCatalog:
    def test_register_and_get(self):
        catalog = ModelCatalog()
        user = make_user_model()
        catalog.register(user)
        assert catalog.get("User") is user
        assert catalog.require("User") is user
        assert "User" in catalog
        assert len(catalog) == 1

    def test_duplicate_rejected(self):
        catalog = ModelCatalog()
        catalog.register(make_user_model())
        with pytest.raises(ValueError, match="Duplicate"):
            catalog.register(make_user_model())

    def test_unknown(self):
        catalog = ModelCatalog()
        assert catalog.get("Nope") is None
        with pytest.raises(KeyError):
            catalog.require("Nope")
