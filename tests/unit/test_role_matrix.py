"""
Unit tests for the capability matrix, the error taxonomy and request parsing.
"""

import uuid

import pytest

from src.kernel.errors import (
    BoardError,
    ColumnNotEmpty,
    CrossProjectMoveRejected,
    InsufficientRole,
    InvalidQuery,
    InvalidReorderSet,
    NotAMember,
    ProjectNotFound,
    TaskNotFound,
)
from src.kernel.models.project import MemberRole
from src.kernel.permissions import ActionClass, CAPABILITY_MATRIX, can_mutate
from src.schemas.board import ColumnReorderRequest, TaskReorderRequest


class TestCapabilityMatrix:
    """Tests for can_mutate."""

    @pytest.mark.parametrize("role", [MemberRole.OWNER, MemberRole.ADMIN])
    @pytest.mark.parametrize("action_class", list(ActionClass))
    def test_owner_and_admin_may_do_everything(self, role, action_class):
        assert can_mutate(role, action_class) is True

    @pytest.mark.parametrize(
        "action_class,allowed",
        [
            (ActionClass.MANAGE_MEMBERS, False),
            (ActionClass.MANAGE_COLUMNS, False),
            (ActionClass.REORDER, True),
            (ActionClass.EDIT_OWN_TASKS, True),
            (ActionClass.DELETE_OTHERS_TASKS, False),
            (ActionClass.VIEW_AUDIT, False),
        ],
    )
    def test_member_row(self, action_class, allowed):
        assert can_mutate(MemberRole.MEMBER, action_class) is allowed

    def test_accepts_plain_role_strings(self):
        """Roles read back from SQLite arrive as str."""
        assert can_mutate("member", ActionClass.REORDER) is True
        assert can_mutate("member", ActionClass.MANAGE_COLUMNS) is False

    def test_every_role_has_a_row(self):
        assert set(CAPABILITY_MATRIX) == set(MemberRole)


class TestErrorTaxonomy:

    @pytest.mark.parametrize(
        "error,status_code",
        [
            (NotAMember(), 403),
            (InsufficientRole(), 403),
            (InvalidReorderSet(), 400),
            (CrossProjectMoveRejected(), 400),
            (InvalidQuery(), 400),
            (ColumnNotEmpty(), 400),
            (ProjectNotFound(), 404),
            (TaskNotFound(), 404),
        ],
    )
    def test_status_codes(self, error, status_code):
        assert isinstance(error, BoardError)
        assert error.status_code == status_code

    def test_to_dict_uses_class_name_as_code(self):
        error = InvalidQuery("limit must not exceed 200")
        assert error.to_dict() == {"detail": "limit must not exceed 200", "code": "InvalidQuery"}

    def test_default_message_and_context(self):
        error = InvalidReorderSet(missing=["a"], unexpected=[])
        assert error.message == InvalidReorderSet.default_message
        assert error.context["missing"] == ["a"]


class TestReorderRequests:

    def test_entries_sorted_by_position(self):
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        request = ColumnReorderRequest.model_validate({
            "projectId": str(uuid.uuid4()),
            "columns": [
                {"id": str(a), "position": 2},
                {"id": str(b), "position": 0},
                {"id": str(c), "position": 1},
            ],
        })
        assert request.ordered_ids() == [b, c, a]

    def test_ties_keep_submission_order(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        request = TaskReorderRequest.model_validate({
            "columnId": str(uuid.uuid4()),
            "tasks": [{"id": str(a), "position": 0}, {"id": str(b), "position": 0}],
        })
        assert request.ordered_ids() == [a, b]

    def test_snake_case_keys_accepted(self):
        project_id = uuid.uuid4()
        request = ColumnReorderRequest.model_validate({"project_id": str(project_id), "columns": []})
        assert request.project_id == project_id
        assert request.ordered_ids() == []
