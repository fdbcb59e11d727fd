import pytest

from carecord.datatypes.safety_datatypes import PREVIEW_LENGTH
from conftest import make_message


@pytest.mark.parametrize("length", [0, 199, 200])
def test_short_text_preview_is_unchanged(length):
    text = "a" * length

    assert make_message(text).preview == text


@pytest.mark.parametrize("length", [201, 203, 1000])
def test_long_text_preview_never_exceeds_limit(length):
    preview = make_message("b" * length).preview

    assert len(preview) == PREVIEW_LENGTH
    assert preview.endswith("...")
    assert preview.startswith("b" * (PREVIEW_LENGTH - 3))
