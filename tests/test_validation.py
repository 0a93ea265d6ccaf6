import pytest
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from script_labs.core.validation import format_error, format_validation_errors, validate_model
from script_labs.modules.auth.schemas import AuthCredentials
from script_labs.modules.labs.schemas import LabCreate, LabIdParam, LabListQuery, LabSearchQuery, LabUpdate


def messages(model, data):
    with pytest.raises(ValidationError) as exc_info:
        model.model_validate(data)
    return format_validation_errors(exc_info.value.errors())


class TestLabCreate:
    def test_trims(self):
        lab = LabCreate.model_validate({"title": "  T  ", "description": " D "})
        assert (lab.title, lab.description) == ("T", "D")

    def test_collects_every_failure(self):
        assert messages(LabCreate, {"title": "", "description": "x" * 1001}) == (
            "Title cannot be empty, Description cannot exceed 1000 characters"
        )

    def test_boundaries(self):
        LabCreate.model_validate({"title": "x" * 255, "description": "y" * 1000})
        assert messages(LabCreate, {"title": "x" * 256, "description": "d"}) == "Title cannot exceed 255 characters"

    def test_non_string(self):
        assert messages(LabCreate, {"title": 5, "description": "d"}) == "Title must be a string"


class TestLabUpdate:
    def test_partial(self):
        update = LabUpdate.model_validate({"description": " new "})
        assert update.model_dump(exclude_unset=True) == {"description": "new"}

    def test_requires_a_field(self):
        assert messages(LabUpdate, {}) == '"value" must have at least 1 key'

    def test_unknown_keys_dropped(self):
        update = LabUpdate.model_validate({"title": "t", "id": 9, "user_id": "x"})
        assert update.model_dump(exclude_unset=True) == {"title": "t"}

    def test_empty_field(self):
        assert messages(LabUpdate, {"title": "  "}) == '"title" is not allowed to be empty'

    def test_null_field(self):
        assert messages(LabUpdate, {"title": None}) == '"title" must be a string'


class TestLabIdParam:
    @pytest.mark.parametrize("raw, expected", [("1", 1), ("42", 42), (7, 7), ("3.0", 3)])
    def test_valid(self, raw, expected):
        assert LabIdParam.model_validate({"id": raw}).id == expected

    def test_missing(self):
        assert messages(LabIdParam, {}) == "Id is required"

    def test_large_id_is_exact(self):
        assert LabIdParam.model_validate({"id": "9007199254740993"}).id == 9007199254740993

    @pytest.mark.parametrize("raw", ["inf", "nan", "1e", ""])
    def test_not_a_number(self, raw):
        assert messages(LabIdParam, {"id": raw}) == "ID must be a number"


class TestLabListQuery:
    def test_defaults(self):
        query = LabListQuery.model_validate({})
        assert (query.page, query.limit, query.sort_by, query.sort_order) == (1, 10, "created_at", "desc")
        assert query.search is None
        assert query.offset == 0

    def test_offset(self):
        assert LabListQuery.model_validate({"page": "3", "limit": "20"}).offset == 40

    def test_clamps(self):
        query = LabListQuery.model_validate({"page": "-4", "limit": "0"})
        assert (query.page, query.limit) == (1, 1)

    def test_sort_order_case_insensitive(self):
        assert LabListQuery.model_validate({"sortOrder": "ASC"}).sort_order == "asc"

    def test_search_too_long(self):
        assert "255" in messages(LabListQuery, {"search": "s" * 256})

    def test_non_numeric_page(self):
        assert messages(LabListQuery, {"page": "two"}) == '"page" must be a number'


class TestLabSearchQuery:
    def test_reads_q(self):
        assert LabSearchQuery.model_validate({"q": "rust"}).search == "rust"

    def test_too_long_names_q(self):
        assert messages(LabSearchQuery, {"q": "s" * 256}) == (
            '"q" length must be less than or equal to 255 characters long'
        )


class TestAuthCredentials:
    def test_valid(self):
        credentials = AuthCredentials.model_validate({"email": " user@example.com ", "password": "secret1"})
        assert credentials.email == "user@example.com"

    @pytest.mark.parametrize("email", ["plain", "a@", "@b.com", 12])
    def test_bad_email(self, email):
        assert messages(AuthCredentials, {"email": email, "password": "secret1"}) == (
            "Please provide a valid email address"
        )

    def test_password_bounds(self):
        AuthCredentials.model_validate({"email": "a@b.com", "password": "x" * 6})
        AuthCredentials.model_validate({"email": "a@b.com", "password": "x" * 128})
        assert messages(AuthCredentials, {"email": "a@b.com", "password": "x" * 5}) == (
            "Password must be at least 6 characters long"
        )


def test_format_error_falls_back_to_pydantic_message():
    error = {"type": "int_parsing", "loc": ("query", "page"), "msg": "Input should be a valid integer"}
    assert format_error(error) == '"page" input should be a valid integer'


def test_validate_model_raises_request_validation_error():
    with pytest.raises(RequestValidationError) as exc_info:
        validate_model(LabIdParam, {"id": "nope"})
    assert format_validation_errors(exc_info.value.errors()) == "ID must be a number"
