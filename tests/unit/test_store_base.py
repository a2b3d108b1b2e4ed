"""Unit tests for store/base.py and search/models.py query building."""

import pytest

from search.models import SearchQuery
from store.base import (
    AnyOf,
    Condition,
    Embed,
    Order,
    SelectQuery,
    any_of,
    check_identifier,
    eq,
    icontains,
)


class TestIdentifiers:
    @pytest.mark.parametrize("name", ["songs", "artist_id", "_x", "T1"])
    def test_valid(self, name):
        assert check_identifier(name) == name

    @pytest.mark.parametrize("name", ["", "1abc", "a b", "x;drop", "a-b"])
    def test_invalid(self, name):
        with pytest.raises(ValueError):
            check_identifier(name)

    def test_condition_rejects_bad_column(self):
        with pytest.raises(ValueError):
            Condition("title; --", "eq", "x")

    def test_embed_rejects_bad_alias(self):
        with pytest.raises(ValueError):
            Embed("art ist", "profiles", "artist_id")

    def test_order_rejects_bad_column(self):
        with pytest.raises(ValueError):
            Order("searched_at desc")


class TestConditions:
    def test_helpers(self):
        assert eq("user_id", "u") == Condition("user_id", "eq", "u")
        assert icontains("title", "x") == Condition("title", "icontains", "x")
        assert any_of(eq("a", 1), eq("b", 2)) == AnyOf((eq("a", 1), eq("b", 2)))

    def test_relation_for_dotted_column(self):
        condition = icontains("artist.display_name", "x")
        assert condition.relation == "artist"
        assert condition.field_name == "display_name"

    def test_plain_column_has_no_relation(self):
        assert eq("title", "x").relation is None


class TestSelectQuery:
    def test_filter_on_embedded_relation_allowed(self):
        query = SelectQuery(
            "songs",
            filters=(any_of(icontains("title", "x"), icontains("artist.display_name", "x")),),
            embed=(Embed("artist", "profiles", "artist_id"),),
        )
        assert set(query.embeds_by_alias) == {"artist"}
        assert len(list(query.iter_conditions())) == 2

    def test_filter_on_missing_relation_rejected(self):
        with pytest.raises(ValueError):
            SelectQuery("songs", filters=(icontains("artist.display_name", "x"),))

    def test_bad_collection_rejected(self):
        with pytest.raises(ValueError):
            SelectQuery("songs;")


class TestSearchQuery:
    def test_trims_text(self):
        query = SearchQuery.from_raw("  love ", "u")
        assert query.text == "love"
        assert query.user_id == "u"
        assert query.issued_at.tzinfo is not None

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_blank_is_none(self, raw):
        assert SearchQuery.from_raw(raw, "u") is None
