"""Tests for masking nested tool payloads."""

import json

from edmcp_pii.core import mask_structured_data, unmask_structured_data


class TestStructuredData:
    """Recursive masking over dicts and lists."""

    def test_mask_participants_list(self, sample_roster, raw_participants_output):
        result = mask_structured_data(raw_participants_output, sample_roster)

        assert result["participants"][0]["name"] == "M12345_name"
        assert result["participants"][0]["email"] == "M12345_email"
        assert result["participants"][1]["name"] == "M12346_name"
        assert result["participants"][2]["email"] == "M99999_email"
        # Non-PII fields are preserved
        assert result["participants"][0]["id"] == 12345
        assert result["participants"][0]["role"] == "Student"
        assert result["page"] == 0
        assert result["perpage"] == 100

    def test_input_is_not_mutated(self, sample_roster, raw_participants_output):
        before = json.dumps(raw_participants_output, sort_keys=True)
        mask_structured_data(raw_participants_output, sample_roster)
        assert json.dumps(raw_participants_output, sort_keys=True) == before

    def test_keys_are_masked(self, sample_roster):
        """Test that a tally keyed by author name has its key tokenized."""
        result = mask_structured_data({"Jackson Smith": 3}, sample_roster)
        assert result == {"M12345_name": 3}

    def test_nested_keys_are_unmasked(self, sample_roster):
        data = {"replierCounts": {"M12345_name": 2, "M12346:name": 1}}
        result = unmask_structured_data(data, sample_roster)
        assert result == {"replierCounts": {"Jackson Smith": 2, "Mary Johnson": 1}}

    def test_array_order_and_length(self, sample_roster):
        result = mask_structured_data(["Jackson Smith", 7, None, "Mary Johnson"], sample_roster)
        assert result == ["M12345_name", 7, None, "M12346_name"]

    def test_scalars_pass_through(self, sample_roster):
        assert mask_structured_data(None, sample_roster) is None
        assert mask_structured_data(42, sample_roster) == 42
        assert mask_structured_data(3.5, sample_roster) == 3.5
        assert mask_structured_data(True, sample_roster) is True

    def test_serialized_result_has_no_roster_pii(self, sample_roster, raw_participants_output):
        """Test that no roster value survives anywhere in a masked payload."""
        payload = {
            "result": raw_participants_output,
            "summary": "Matheus John Nery (C00789012) replied to Mary Johnson",
            "by_author": {"Arun Lakhotia": ["C00654321", "matheus.nery@louisiana.edu"]},
        }
        serialized = json.dumps(mask_structured_data(payload, sample_roster))

        for entry in sample_roster:
            assert entry.display_name not in serialized
            if entry.student_id:
                assert entry.student_id not in serialized
            if entry.email:
                assert entry.email not in serialized

    def test_unmask_llm_content(self, sample_roster):
        content = {
            "subject": "Team Assignments",
            "message": (
                "<p>Team 1: M12345:name (Lead), M12346_name (Developer)</p>"
                "<p>Please contact M12345_email for details.</p>"
                "<p>Student ID for reference: M12345_CID</p>"
            ),
        }
        result = unmask_structured_data(content, sample_roster)

        assert result["subject"] == "Team Assignments"
        assert result["message"] == (
            "<p>Team 1: Jackson Smith (Lead), Mary Johnson (Developer)</p>"
            "<p>Please contact jackson.smith@louisiana.edu for details.</p>"
            "<p>Student ID for reference: C00123456</p>"
        )

    def test_round_trip(self, sample_roster, raw_participants_output):
        masked = mask_structured_data(raw_participants_output, sample_roster)
        assert unmask_structured_data(masked, sample_roster) == raw_participants_output
