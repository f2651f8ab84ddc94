"""
Unit tests for ci_common.models.

Tests identity parsing and equality, build references and the
serialization of build records and users.
"""

from datetime import UTC, datetime

import pytest

from ci_common.models import (
    BuildOutcome,
    BuildRecord,
    BuildRef,
    Identity,
    User,
    parse_build_ref,
    parse_identity,
)


class TestIdentity:
    """Test suite for Identity and parse_identity."""

    def test_parse_name_and_address(self):
        identity = parse_identity("First Person <first@example.com>")

        assert identity.name == "First Person"
        assert identity.address == "first@example.com"

    def test_parse_strips_whitespace(self):
        identity = parse_identity("  Jane Doe   <  jane@example.com >  ")

        assert identity.name == "Jane Doe"
        assert identity.address == "jane@example.com"

    def test_parse_address_only_in_brackets(self):
        identity = parse_identity("<bot@example.com>")

        assert identity.name == "bot@example.com"
        assert identity.address == "bot@example.com"

    def test_parse_bare_address(self):
        identity = parse_identity("jane@example.com")

        assert identity.address == "jane@example.com"

    def test_parse_bare_user_id(self):
        identity = parse_identity("jdoe")

        assert identity.name == "jdoe"
        assert identity.address == "jdoe"

    def test_parse_empty_rejected(self):
        with pytest.raises(ValueError):
            parse_identity("   ")

    def test_equality_by_address_only(self):
        assert Identity("Jane", "jane@example.com") == Identity(
            "Jane Doe", "jane@example.com"
        )
        assert len({Identity("Jane", "j@x.org"), Identity("J", "j@x.org")}) == 1
        assert Identity("Jane", "jane@example.com") != Identity("Jane", "other@example.com")

    def test_str(self):
        assert str(Identity("Jane", "jane@example.com")) == "Jane <jane@example.com>"
        assert str(Identity("jdoe", "jdoe")) == "jdoe"

    def test_is_immutable(self):
        identity = Identity("Jane", "jane@example.com")

        with pytest.raises(AttributeError):
            identity.address = "other@example.com"


class TestBuildRef:
    """Test suite for build references."""

    def test_parse(self):
        assert parse_build_ref("jobA#12") == BuildRef("jobA", 12)

    def test_parse_job_containing_hash(self):
        assert parse_build_ref("folder#sub#3") == BuildRef("folder#sub", 3)

    @pytest.mark.parametrize("value", ["jobA", "#3", "jobA#", "jobA#x", "jobA#0"])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            parse_build_ref(value)

    def test_str(self):
        assert str(BuildRef("jobA", 3)) == "jobA#3"


class TestBuildRecord:
    """Test suite for BuildRecord."""

    def test_equality_by_job_and_number(self):
        first = BuildRecord("jobA", 1, BuildOutcome.SUCCESS)
        again = BuildRecord("jobA", 1, BuildOutcome.FAILURE)

        assert first == again
        assert hash(first) == hash(again)
        assert first != BuildRecord("jobA", 2, BuildOutcome.SUCCESS)
        assert first != BuildRecord("jobB", 1, BuildOutcome.SUCCESS)

    def test_ref_and_success(self):
        build = BuildRecord("jobA", 4, BuildOutcome.UNSTABLE)

        assert build.ref == BuildRef("jobA", 4)
        assert not build.is_success
        assert BuildRecord("jobA", 5, BuildOutcome.SUCCESS).is_success

    def test_to_dict(self):
        created = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        build = BuildRecord(
            job="jobB",
            number=2,
            outcome=BuildOutcome.FAILURE,
            change_set=(Identity("Jane", "jane@example.com"),),
            upstream_causes=(BuildRef("jobA", 7),),
            created_at=created,
        )

        assert build.to_dict() == {
            "job": "jobB",
            "number": 2,
            "outcome": "FAILURE",
            "changes": [{"name": "Jane", "address": "jane@example.com"}],
            "causes": [{"job": "jobA", "number": 7}],
            "created_at": created.isoformat(),
        }

    def test_defaults(self):
        build = BuildRecord("jobA", 1, BuildOutcome.NOT_BUILT)

        assert build.change_set == ()
        assert build.upstream_causes == ()
        assert build.created_at.tzinfo is not None


class TestUser:
    """Test suite for User."""

    def test_to_dict(self):
        created = datetime(2024, 1, 1, tzinfo=UTC)
        user = User(
            id="user-1",
            name="Alice",
            email="alice@example.com",
            created_at=created,
            is_active=False,
        )

        assert user.to_dict() == {
            "id": "user-1",
            "name": "Alice",
            "email": "alice@example.com",
            "created_at": created.isoformat(),
            "is_active": False,
        }
