"""
Tests for the response envelope helpers.
"""

from policy_mail.api.common.responses import json_error, json_success, status_for_code


class TestEnvelopes:
    """Success and error envelopes."""

    def test_success_envelope(self):
        assert json_success({"removed": 2}) == {
            "success": True,
            "data": {"removed": 2},
            "error": None,
        }

    def test_error_envelope_omits_empty_fields(self):
        envelope = json_error("NOT_FOUND", "Nothing here")

        assert envelope == {
            "success": False,
            "data": None,
            "error": {"code": "NOT_FOUND", "message": "Nothing here"},
        }

    def test_error_envelope_with_field_and_details(self):
        envelope = json_error(
            "VALIDATION_ERROR", "Check input", field="ecid", details={"errors": {"ecid": ["x"]}}
        )

        assert envelope["error"]["field"] == "ecid"
        assert envelope["error"]["details"] == {"errors": {"ecid": ["x"]}}

    def test_status_mapping(self):
        assert status_for_code("VALIDATION_ERROR") == 422
        assert status_for_code("SESSION_NOT_FOUND") == 404
        assert status_for_code("SESSION_INVALID") == 409
        assert status_for_code("SOMETHING_ELSE") == 500
