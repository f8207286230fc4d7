"""Unit tests for canonical filter construction and helpers."""
import pytest

from media_catalog.errors import ValidationError
from media_catalog.query.filters import (
    MISSING,
    build_filter,
    deep_get,
    escape_regex,
    parse_boolean,
    split_tags,
    tokenize,
)


class TestHelpers:
    """Test suite for the small parsing helpers."""

    def test_deep_get_nested(self):
        assert deep_get({"audio": {"intensity": 7}}, "audio.intensity") == 7

    def test_deep_get_missing_intermediate(self):
        """Test that a missing or non-mapping intermediate short-circuits to MISSING."""
        assert deep_get({}, "audio.intensity") is MISSING
        assert deep_get({"audio": None}, "audio.intensity") is MISSING
        assert deep_get({"audio": [1, 2]}, "audio.intensity") is MISSING

    def test_deep_get_stored_none_is_not_missing(self):
        assert deep_get({"year": None}, "year") is None

    def test_escape_regex(self):
        assert escape_regex("a.b*") == r"a\.b\*"

    @pytest.mark.parametrize("value,expected", [("true", True), ("YES", True), ("0", False), ("no", False)])
    def test_parse_boolean(self, value, expected):
        assert parse_boolean(value) is expected

    def test_parse_boolean_fallback(self):
        assert parse_boolean("maybe", fallback=True) is True
        assert parse_boolean(None) is False

    def test_tokenize(self):
        assert tokenize("Loud, SCREAMING goat!") == ["loud", "screaming", "goat"]

    def test_split_tags(self):
        assert split_tags(" Farm, loud ,,") == ["farm", "loud"]
        assert split_tags(None) == []


class TestBuildFilter:
    """Test suite for build_filter."""

    def test_no_params_filters_approved_only(self):
        assert build_filter() == {"approved": True}

    def test_include_unapproved(self):
        assert build_filter(include_unapproved=True) == {}

    def test_ranges_become_operator_sets(self):
        result = build_filter(intensity_range="5-10", duration_range="-3", years="2019-")
        assert result == {
            "approved": True,
            "audio.intensity": {"$gte": 5, "$lte": 10},
            "audio.duration": {"$lte": 3},
            "year": {"$gte": 2019},
        }

    def test_malformed_range_rejected(self):
        """Test that a malformed range is an error rather than no filter."""
        with pytest.raises(ValidationError):
            build_filter(intensity_range="loud")

    def test_year_exact(self):
        assert build_filter(year="2020")["year"] == 2020

    def test_year_with_years_range_uses_clause(self):
        """Test that exact year and year range combine instead of overwriting."""
        result = build_filter(years="2019-2021", year=2020)
        assert result["$and"][0]["year"] == {"$gte": 2019, "$lte": 2021}
        assert {"year": 2020} in result["$and"]

    def test_invalid_year_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            build_filter(year="twenty")
        assert exc_info.value.details["field"] == "year"

    def test_text_query_escapes_and_searches_all_text_fields(self):
        result = build_filter(q="opera (live)")
        or_clause = result["$and"][1]["$or"]
        fields = [next(iter(c)) for c in or_clause]
        assert fields == ["title", "context", "source.title", "tags"]
        assert or_clause[0]["title"] == {"$regex": "opera|live", "$options": "i"}

    def test_breed_and_note_are_case_insensitive_regexes(self):
        result = build_filter(breed="alp.ne", note="c#4")
        assert result["goat.breed"] == {"$regex": r"alp\.ne", "$options": "i"}
        assert result["analysis.primary_note"] == {"$regex": r"^c\#4$", "$options": "i"}

    def test_tags_include_exclude_and_video(self):
        result = build_filter(tags="Loud,farm", exclude_tags="meme", has_video="true")
        include, exclude, video = result["$and"][1:]
        assert [p.pattern for p in include["tags"]["$in"]] == ["^loud$", "^farm$"]
        assert [p.pattern for p in exclude["tags"]["$nin"]] == ["^meme$"]
        assert video == {"media.video": {"$exists": True}}

    def test_tag_patterns_match_whole_tag_in_any_case(self):
        """Test that stored tag case does not matter and partial tags do not match."""
        include = build_filter(tags="loud")["$and"][1]["tags"]["$in"]
        assert include[0].match("Loud")
        assert include[0].match("LOUD")
        assert not include[0].match("loudest")

    def test_tag_patterns_escape_input(self):
        include = build_filter(tags="c++")["$and"][1]["tags"]["$in"]
        assert include[0].pattern == r"^c\+\+$"
