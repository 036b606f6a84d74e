"""Tests for value objects, entities and datetime parsing."""

from datetime import datetime, timezone

import pytest

from app.domain.entities import (
    UNASSIGNED_USER_NAME,
    TaskEntity,
    UserEntity,
    validate_task_fields,
    validate_task_ids,
    validate_user_fields,
)
from app.domain.exceptions import ValidationException
from app.domain.value_objects.core import EmailAddress, RecordId
from app.shared.utils.datetime import parse_datetime
from app.shared.utils.generators import generate_cuid

DEADLINE = datetime(2030, 1, 1, tzinfo=timezone.utc)


class TestRecordId:
    def test_generated_ids_are_valid(self) -> None:
        """Every id the service generates passes request-side validation."""
        for _ in range(20):
            assert RecordId.is_valid(generate_cuid())

    @pytest.mark.parametrize("raw", ["", "1abc", "ABC", "abc-def", "a", "x" * 40, None, 12])
    def test_malformed_ids_rejected(self, raw: object) -> None:
        assert not RecordId.is_valid(raw)

    def test_constructor_raises_on_malformed(self) -> None:
        with pytest.raises(ValueError, match="Invalid id format"):
            RecordId("Not-An-Id")


class TestEmailAddress:
    def test_normalize_trims_and_lowercases(self) -> None:
        assert EmailAddress.normalize("  Ada@Example.COM ").value == "ada@example.com"

    def test_missing_at_rejected(self) -> None:
        with pytest.raises(ValueError):
            EmailAddress.normalize("not-an-email")

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError):
            EmailAddress.normalize("   ")


class TestTaskEntity:
    def test_defaults_are_unassigned(self) -> None:
        task = TaskEntity(id="t1", name="Write", deadline=DEADLINE)
        assert task.assigned_user_id == ""
        assert task.assigned_user_name == UNASSIGNED_USER_NAME
        assert not task.is_assigned
        assert not task.is_pending

    def test_assign_and_unassign(self) -> None:
        task = TaskEntity(id="t1", name="Write", deadline=DEADLINE)
        task.assign("u1", "Ada")
        assert task.is_pending
        assert task.assigned_user_name == "Ada"
        task.unassign()
        assert task.assigned_user_id == ""
        assert task.assigned_user_name == "unassigned"

    def test_completed_assigned_task_is_not_pending(self) -> None:
        task = TaskEntity(id="t1", name="Write", deadline=DEADLINE, completed=True)
        task.assign("u1", "Ada")
        assert task.is_assigned and not task.is_pending

    def test_document_round_trip_fills_defaults(self) -> None:
        doc = {"id": "t1", "name": "Write", "deadline": DEADLINE, "assigned_user_id": None}
        task = TaskEntity.from_document(doc)
        assert task.assigned_user_id == ""
        assert task.description == ""
        assert TaskEntity.from_document(task.to_document()) == task


class TestValidation:
    def test_task_requires_name_and_deadline(self) -> None:
        with pytest.raises(ValidationException, match="Must include name and deadline"):
            validate_task_fields("", DEADLINE)
        with pytest.raises(ValidationException, match="Must include name and deadline"):
            validate_task_fields("Write", None)

    def test_user_requires_name_and_email(self) -> None:
        with pytest.raises(ValidationException, match="Name and email are required"):
            validate_user_fields("Ada", "")
        with pytest.raises(ValidationException, match="Name and email are required"):
            validate_user_fields(None, "ada@example.com")

    def test_task_name_stripped(self) -> None:
        assert validate_task_fields("  Write report ", DEADLINE) == ("Write report", DEADLINE)

    def test_user_email_normalized(self) -> None:
        assert validate_user_fields(" Ada ", "ADA@x.io") == ("Ada", "ada@x.io")

    def test_task_ids_deduplicated_and_checked(self) -> None:
        assert validate_task_ids(["abc1", "abc1", "def2"]) == ["abc1", "def2"]
        with pytest.raises(ValidationException, match="Invalid id format"):
            validate_task_ids(["ok1", "BAD!"])

    def test_user_from_document_dedupes_pending(self) -> None:
        user = UserEntity.from_document(
            {"id": "u1", "name": "Ada", "email": "a@b.c", "pending_task_ids": ["t1", "t1"]}
        )
        assert user.pending_task_ids == ["t1"]


class TestParseDatetime:
    def test_epoch_milliseconds(self) -> None:
        assert parse_datetime(1893456000000) == DEADLINE

    def test_digit_string(self) -> None:
        assert parse_datetime("1893456000000") == DEADLINE

    def test_iso_with_z(self) -> None:
        assert parse_datetime("2030-01-01T00:00:00Z") == DEADLINE

    def test_naive_datetime_becomes_utc(self) -> None:
        assert parse_datetime(datetime(2030, 1, 1)) == DEADLINE

    @pytest.mark.parametrize("raw", [True, "tomorrow", [1], None])
    def test_rejects_other_values(self, raw: object) -> None:
        with pytest.raises(ValueError):
            parse_datetime(raw)
