import pytest

from queryhandler.exceptions import ArgumentNullError, InvalidTypeError, ParseError
from queryhandler.parsers.filters import (
    FieldAlternative,
    FilterExpression,
    parse_filter_expression,
)

OBJECT_ID = "507f1f77bcf86cd799439011"


def test_field_alternative():
    assert FieldAlternative.from_string("ObjectId(_id)") == FieldAlternative("_id", "ObjectId")
    assert FieldAlternative.from_string("author.slug") == FieldAlternative("author.slug")
    assert str(FieldAlternative("_id", "ObjectId")) == "ObjectId(_id)"


def test_filter_object_id_or_slug():
    expression = parse_filter_expression("id:ObjectId(_id),slug")
    assert expression.build_filter({"id": OBJECT_ID}) == {
        "$or": [{"_id": OBJECT_ID}, {"slug": OBJECT_ID}]
    }
    # Invalid ObjectId, only the slug remains.
    assert expression.build_filter({"id": "first-article"}) == {"slug": "first-article"}


def test_filter_plain_names():
    expression = parse_filter_expression("slug category")
    assert expression.build_filter({"slug": "first", "category": "news"}) == {
        "slug": "first",
        "category": "news",
    }


def test_filter_date():
    expression = parse_filter_expression("day:Date(publishedAt),slug")
    assert expression.build_filter({"day": "2020-07-12"}) == {
        "$or": [{"publishedAt": "2020-07-12"}, {"slug": "2020-07-12"}]
    }


def test_filter_multiple_or_groups():
    """Each parameter keeps its own $or group."""
    expression = parse_filter_expression("id:ObjectId(_id),slug author:ObjectId(author),authorSlug")
    assert expression.build_filter({"id": OBJECT_ID, "author": "john"}) == {
        "$or": [{"_id": OBJECT_ID}, {"slug": OBJECT_ID}],
        "authorSlug": "john",
    }

    assert expression.build_filter({"id": OBJECT_ID, "author": OBJECT_ID}) == {
        "$and": [
            {"$or": [{"_id": OBJECT_ID}, {"slug": OBJECT_ID}]},
            {"$or": [{"author": OBJECT_ID}, {"authorSlug": OBJECT_ID}]},
        ]
    }


def test_filter_mapping():
    expression = parse_filter_expression({"id": ["ObjectId(_id)", "slug"]})
    assert expression.build_filter({"id": "first"}) == {"slug": "first"}


def test_filter_unsupported_type_dropped():
    expression = parse_filter_expression("id:Uuid(_id),slug")
    assert expression.build_filter({"id": OBJECT_ID}) == {"slug": OBJECT_ID}


def test_filter_no_valid_alternatives():
    expression = parse_filter_expression("id:ObjectId(_id)")
    with pytest.raises(InvalidTypeError, match="not valid for id") as exc_info:
        expression.build_filter({"id": "first"})
    assert exc_info.value.name == "TypeError"


@pytest.mark.parametrize("params", [{}, {"id": ""}, {"id": None}])
def test_filter_missing_argument(params):
    expression = parse_filter_expression("id:ObjectId(_id),slug")
    with pytest.raises(ArgumentNullError, match="Missing argument: id"):
        expression.build_filter(params)


def test_filter_int_path_parameter():
    """Django path converters can provide non-string values."""
    expression = parse_filter_expression("pk")
    assert expression.build_filter({"pk": 12}) == {"pk": 12}


def test_filter_empty_definition():
    with pytest.raises(ParseError):
        parse_filter_expression("")
    with pytest.raises(ParseError):
        FilterExpression.from_mapping({})


def test_filter_expression_is_cached():
    assert parse_filter_expression("id:ObjectId(_id),slug") is parse_filter_expression(
        "id:ObjectId(_id),slug"
    )
