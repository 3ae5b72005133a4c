"""Tests for query signatures and readiness."""

from __future__ import annotations

import pytest
from conftest import make_post_model, make_user_model

from strata.filters import ChainRef
from strata.query import Query, concretize


class TestSignature:
    def test_param_order_does_not_matter(self):
        post = make_post_model()
        a = post.get_list({"userID": 1, "title": "x"})
        b = post.get_list({"title": "x", "userID": 1})
        assert a.signature == b.signature
        assert a.same_signature(b)

    def test_differs_by_param_value(self):
        user = make_user_model()
        assert user.get_item({"id": 1}).signature != user.get_item({"id": 2}).signature

    def test_differs_by_return_type(self):
        user = make_user_model()
        assert user.get_item().signature != user.get_list().signature

    def test_differs_by_fields(self):
        user = make_user_model()
        assert (
            user.get_item({"id": 1}, ["name"]).signature
            != user.get_item({"id": 1}).signature
        )

    def test_filters_are_not_part_of_signature(self):
        user = make_user_model()
        plain = user.get_item({"id": 1})
        filtered = plain.filter([user.getter("name"), str.upper])
        assert plain.signature == filtered.signature
        assert len(filtered.filters) == 2
        assert plain.filters == ()

    def test_unhashable_param_values(self):
        post = make_post_model()
        a = post.get_list({"ids": [1, 2], "where": {"a": 1, "b": 2}})
        b = post.get_list({"where": {"b": 2, "a": 1}, "ids": [1, 2]})
        assert a.signature == b.signature
        assert hash(a.signature) == hash(b.signature)


class TestQuery:
    def test_build_validates_fields(self):
        from strata.errors import UnknownFieldError

        with pytest.raises(UnknownFieldError):
            Query.build(make_user_model(), "item", {}, ["age"])

    def test_none_params_are_not_ready(self):
        post = make_post_model()
        assert post.get_list({"userID": 1}).is_ready()
        assert not post.get_list({"userID": None}).is_ready()

    def test_filter_accepts_single_stage(self):
        query = make_user_model().get_item().filter(ChainRef("other"))
        assert len(query.filters) == 1

    def test_describe(self):
        query = make_user_model().get_item({"id": 1}, ["name", "email"])
        assert query.describe() == "User.item(id=1)[email,name]"


class TestConcretize:
    def test_concrete_query_passes_through(self):
        query = make_user_model().get_item({"id": 1})
        assert concretize(query, {}) is query

    def test_function_returning_none(self):
        assert concretize(lambda values: None, {}) is None

    def test_function_with_unresolved_param(self):
        post = make_post_model()

        def posts(values):
            user = values.get("user")
            return post.get_list({"userID": user and user["id"]})

        assert concretize(posts, {}) is None
        ready = concretize(posts, {"user": {"id": 7}})
        assert ready is not None
        assert ready.params == {"userID": 7}

    def test_missing_key_means_not_ready(self):
        post = make_post_model()
        assert concretize(lambda v: post.get_list({"userID": v["user"]["id"]}), {}) is None

    def test_function_must_return_query(self):
        with pytest.raises(TypeError, match="expected Query"):
            concretize(lambda values: {"model": "User"}, {})
