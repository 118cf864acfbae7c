"""Tests for decision and action-item tracking"""

import pytest

from threadclear.analysis.commitments import UNASSIGNED, CommitmentTracker
from threadclear.analysis.models import Priority


@pytest.fixture
def tracker():
    return CommitmentTracker()


class TestCommitmentTracker:

    def test_requests_commitments_and_decisions(self, tracker, build_capsule, regex_context):
        capsule = build_capsule(
            "Alice: Can you send the contract by Friday?\n"
            "Bob: I will send it tomorrow.\n"
            "Alice: We agreed on the premium plan."
        )

        report = tracker.analyze(capsule, regex_context)

        assert len(report.decisions) == 1
        assert report.decisions[0].decided_by == "Alice"
        assert report.decisions[0].message_id == "msg3"

        request, commitment = report.action_items
        assert request.assigned_to == "Bob"
        assert request.requested_by == "Alice"
        assert request.message_id == "msg1"
        assert request.status == "Pending"
        assert commitment.assigned_to == "Bob"
        assert commitment.requested_by == "Alice"
        assert commitment.message_id == "msg2"

    def test_reply_with_completion_language_closes_item(self, tracker, build_capsule, regex_context):
        capsule = build_capsule(
            "Alice: Can you send the contract?\n"
            "Bob: Done, the contract is attached."
        )

        items = tracker.analyze(capsule, regex_context).action_items

        assert len(items) == 1
        assert items[0].status == "Completed"

    def test_later_status_update_closes_item(self, tracker, build_capsule, regex_context):
        capsule = build_capsule(
            "Alice: I'll draft the release notes.\n"
            "Bob: Thanks Alice.\n"
            "Carol: Reminder that the demo is at noon.\n"
            "Alice: The release notes are finished."
        )
        items = tracker.analyze(capsule, regex_context).action_items
        assert [(i.assigned_to, i.status) for i in items] == [("Alice", "Completed")]

    def test_request_without_clear_addressee(self, tracker, build_capsule, regex_context):
        capsule = build_capsule(
            "Alice: Could you review the draft?\n"
            "Alice: It is in the shared folder.\n"
            "Bob: Looks fine.\n"
            "Carol: Agreed with Bob."
        )
        items = tracker.analyze(capsule, regex_context).action_items
        assert items[0].assigned_to == UNASSIGNED

    def test_urgent_request_priority(self, tracker, build_capsule, regex_context):
        capsule = build_capsule("Alice: Please send the numbers asap.\nBob: On it.")
        items = tracker.analyze(capsule, regex_context).action_items
        assert items[0].priority == Priority.HIGH

    def test_questions_are_not_decisions(self, tracker, build_capsule, regex_context):
        capsule = build_capsule("Alice: Have we agreed on the venue?\nBob: Not yet.")
        assert tracker.analyze(capsule, regex_context).decisions == []

    @pytest.mark.asyncio
    async def test_detect_returns_decisions(self, tracker, build_capsule, regex_context):
        capsule = build_capsule("Alice: Final decision: we ship on Monday.\nBob: Great.")
        decisions = await tracker.detect(capsule, regex_context)
        assert [d.message_id for d in decisions] == ["msg1"]
