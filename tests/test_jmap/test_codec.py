"""Tests for the request/response envelope codec."""

import pytest

from jmapmail.jmap.codec import (
    CreationRef,
    Invocation,
    Response,
    ResultReference,
    check_correlation,
    decode_response,
    encode_request,
    encode_value,
    raise_for_errors,
)
from jmapmail.jmap.errors import ApiError, DecodeError, MethodError
from jmapmail.jmap.types import USING, EmailAddress


def _inv(name: str, call_id: str, **arguments: object) -> Invocation:
    return Invocation(name, dict(arguments), call_id)


# ── encode_request ─────────────────────────────────────────────────────────────


class TestEncodeRequest:
    def test_envelope_shape(self) -> None:
        body = encode_request([_inv("Mailbox/get", "m0", accountId="a1", ids=None)])
        assert body == {
            "using": USING,
            "methodCalls": [["Mailbox/get", {"accountId": "a1", "ids": None}, "m0"]],
        }

    def test_preserves_invocation_order(self) -> None:
        invocations = [_inv(f"Foo/get{i}", f"c{i}") for i in range(5)]
        body = encode_request(invocations)
        assert [c[2] for c in body["methodCalls"]] == ["c0", "c1", "c2", "c3", "c4"]

    def test_duplicate_call_ids_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate call id"):
            encode_request([_inv("A/get", "x"), _inv("B/get", "x")])

    def test_custom_using(self) -> None:
        body = encode_request([], using=["urn:ietf:params:jmap:core"])
        assert body["using"] == ["urn:ietf:params:jmap:core"]


# ── encode_value ───────────────────────────────────────────────────────────────


class TestEncodeValue:
    def test_creation_ref_as_value(self) -> None:
        assert encode_value({"emailId": CreationRef("draft")}) == {"emailId": "#draft"}

    def test_creation_ref_as_key(self) -> None:
        encoded = encode_value({CreationRef("draft"): {"keywords/$draft": None}})
        assert encoded == {"#draft": {"keywords/$draft": None}}

    def test_result_reference_prefixes_key(self) -> None:
        ref = ResultReference(result_of="t0", name="Thread/get", path="/list/*/emailIds")
        assert encode_value({"ids": ref}) == {
            "#ids": {"resultOf": "t0", "name": "Thread/get", "path": "/list/*/emailIds"}
        }

    def test_literal_hash_string_is_untouched(self) -> None:
        assert encode_value({"id": "#notaref"}) == {"id": "#notaref"}

    def test_nested_lists_and_typed_values(self) -> None:
        encoded = encode_value({"to": [EmailAddress("bob@example.com", "Bob")]})
        assert encoded == {"to": [{"name": "Bob", "email": "bob@example.com"}]}


# ── decode_response ────────────────────────────────────────────────────────────


class TestDecodeResponse:
    def test_decodes_invocations_and_state(self) -> None:
        response = decode_response({
            "methodResponses": [["Mailbox/get", {"list": []}, "m0"]],
            "sessionState": "s9",
        })
        assert response.invocations == [Invocation("Mailbox/get", {"list": []}, "m0")]
        assert response.session_state == "s9"

    def test_session_state_optional(self) -> None:
        assert decode_response({"methodResponses": []}).session_state is None

    def test_missing_method_responses(self) -> None:
        with pytest.raises(DecodeError):
            decode_response({"sessionState": "s"})

    def test_malformed_invocation(self) -> None:
        with pytest.raises(DecodeError):
            decode_response({"methodResponses": [["Mailbox/get", {}]]})


# ── raise_for_errors / check_correlation ───────────────────────────────────────


class TestRaiseForErrors:
    def test_error_anywhere_fails_the_batch(self) -> None:
        response = Response([
            Invocation("Mailbox/get", {"list": []}, "m0"),
            Invocation("error", {"type": "unknownMethod", "description": "nope"}, "x1"),
        ])
        with pytest.raises(MethodError) as exc_info:
            raise_for_errors(response)
        assert exc_info.value.kind == "unknownMethod"
        assert exc_info.value.description == "nope"

    def test_error_without_type(self) -> None:
        with pytest.raises(MethodError) as exc_info:
            raise_for_errors(Response([Invocation("error", {}, "x")]))
        assert exc_info.value.kind == "unknown"

    def test_clean_response_passes(self) -> None:
        raise_for_errors(Response([Invocation("Mailbox/get", {}, "m0")]))


class TestCheckCorrelation:
    def test_in_order_passes(self) -> None:
        sent = [_inv("A/get", "a"), _inv("B/get", "b")]
        check_correlation(sent, Response([Invocation("A/get", {}, "a"), Invocation("B/get", {}, "b")]))

    def test_extra_implicit_response_allowed(self) -> None:
        sent = [_inv("Email/set", "s0"), _inv("EmailSubmission/set", "s1")]
        response = Response([
            Invocation("Email/set", {}, "s0"),
            Invocation("EmailSubmission/set", {}, "s1"),
            Invocation("Email/set", {}, "s1"),
        ])
        check_correlation(sent, response)

    def test_missing_call_id(self) -> None:
        with pytest.raises(ApiError, match="Missing response"):
            check_correlation([_inv("A/get", "a")], Response([]))

    def test_out_of_order(self) -> None:
        sent = [_inv("A/get", "a"), _inv("B/get", "b")]
        with pytest.raises(ApiError, match="out of order"):
            check_correlation(sent, Response([Invocation("B/get", {}, "b"), Invocation("A/get", {}, "a")]))


class TestResponseGet:
    def test_matches_name_and_call_id(self) -> None:
        response = Response([
            Invocation("EmailSubmission/set", {"n": 1}, "s1"),
            Invocation("Email/set", {"n": 2}, "s1"),
        ])
        assert response.get("s1", "Email/set").arguments == {"n": 2}
        assert response.get("s1").arguments == {"n": 1}

    def test_missing_raises_api_error(self) -> None:
        with pytest.raises(ApiError):
            Response([]).get("nope")
