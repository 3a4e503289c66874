from __future__ import annotations

import pytest

from repairdesk.core import ulid_helper

pytestmark = pytest.mark.unit


def test_generate_ulid_is_valid_and_unique() -> None:
    first = ulid_helper.generate_ulid()
    second = ulid_helper.generate_ulid()

    assert first != second
    assert len(first) == 26
    assert ulid_helper.is_valid_ulid(first)


@pytest.mark.parametrize("value", ["not-a-ulid", "", None])
def test_parse_ulid_rejects_garbage(value) -> None:
    assert ulid_helper.parse_ulid(value) is None
    assert ulid_helper.is_valid_ulid(value) is False
