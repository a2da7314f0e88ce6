"""
Tests for API envelope models.
"""

import pydantic
import pytest

from vectra_saas.exceptions import UnexpectedResponseError
from vectra_saas.models import EventPage, Page, TagSet, TokenResponse, parse_response


class TestTokenResponse:

    def test_parse(self):
        token = TokenResponse.model_validate(
            {"access_token": "abc", "expires_in": 21600, "token_type": "Bearer", "scope": "x"}
        )
        assert token.access_token == "abc"
        assert token.expires_in == 21600

    def test_empty_token_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            TokenResponse.model_validate({"access_token": "", "expires_in": 10})


class TestPage:

    def test_parse(self, sample_detection_data):
        page = Page.model_validate({
            "count": 1,
            "next": None,
            "previous": None,
            "results": [sample_detection_data],
        })
        assert page.results[0]["id"] == 1042
        assert page.next is None

    def test_null_results(self):
        assert Page.model_validate({"results": None}).results == []


class TestEventPage:

    def test_parse(self, sample_account_event):
        page = EventPage.model_validate({
            "events": [sample_account_event],
            "remaining_count": 0,
            "next_checkpoint": 9002,
        })
        assert page.exhausted is True
        assert page.next_checkpoint == 9002

    def test_defaults(self):
        page = EventPage.model_validate({})
        assert page.events == []
        assert page.exhausted is True


class TestTagSet:

    def test_from_wrapped(self):
        assert TagSet.from_response({"tag_id": 5, "tags": ["a"]}).tags == ["a"]

    def test_from_bare_list(self):
        assert TagSet.from_response(["a", "b"]).tags == ["a", "b"]

    def test_from_none(self):
        assert TagSet.from_response(None).tags == []

    def test_with_added(self):
        assert TagSet(tags=["old"]).with_added(["new"]).tags == ["new", "old"]

    def test_without_absent_tag(self):
        tags = TagSet(tags=["a", "b"])
        assert tags.without("c").tags == ["a", "b"]
        assert tags.without("a").tags == ["b"]

    def test_malformed_tags(self):
        with pytest.raises(UnexpectedResponseError):
            TagSet.from_response({"tags": [{"name": "a"}]}, source="/tagging/host/3")


class TestParseResponse:
    """Tests for envelope validation at the response boundary."""

    def test_none_is_empty_envelope(self):
        assert parse_response(Page, None, "/users").results == []

    @pytest.mark.parametrize("body", ["<html>maintenance</html>", [{"id": 1}], {"results": "x"}])
    def test_wrong_shape_wrapped(self, body):
        with pytest.raises(UnexpectedResponseError) as exc_info:
            parse_response(Page, body, "/accounts?page=1")

        assert "Page" in str(exc_info.value)
        assert "/accounts?page=1" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, pydantic.ValidationError)
