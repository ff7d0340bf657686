import pytest

from app.services.project_colors import (
    PROJECT_PASTEL_HEX, ColorCandidate, assign_unique_pastel_colors, hash_text, normalize_hex_color
)


def candidates(count: int):
    return [ColorCandidate(key=f"1:{i}", name=f"Project {i}") for i in range(count)]


def test_distinct_colors_up_to_palette_size():
    colors = assign_unique_pastel_colors(candidates(len(PROJECT_PASTEL_HEX)))

    assert len(set(colors.values())) == len(PROJECT_PASTEL_HEX)


def test_same_input_gives_same_colors_in_any_order():
    projects = candidates(10)

    assert assign_unique_pastel_colors(projects) == assign_unique_pastel_colors(list(reversed(projects)))


def test_explicit_palette_color_is_kept_once():
    color = PROJECT_PASTEL_HEX[3]
    projects = [
        ColorCandidate(key="1:1", name="Alpha", color=color.lower()),
        ColorCandidate(key="1:2", name="Beta", color=color),
    ]

    colors = assign_unique_pastel_colors(projects)

    assert colors["1:1"] == color
    assert colors["1:2"] != color


def test_off_palette_color_is_replaced():
    colors = assign_unique_pastel_colors([ColorCandidate(key="1:1", name="Alpha", color="#000000")])

    assert colors["1:1"] in PROJECT_PASTEL_HEX


def test_exhausted_palette_falls_back_to_hashed_color():
    projects = candidates(len(PROJECT_PASTEL_HEX) + 3)

    colors = assign_unique_pastel_colors(projects)

    assert len(colors) == len(projects)
    assert set(colors.values()) == set(PROJECT_PASTEL_HEX)


def test_hash_text_is_unsigned_32_bit():
    assert hash_text("") == 0
    assert hash_text("a") == 97
    assert 0 <= hash_text("x" * 200) < 2 ** 32


@pytest.mark.parametrize("value, expected", [
    ("#abcdef", "#ABCDEF"),
    (" #A9E8E8 ", "#A9E8E8"),
    ("abcdef", None),
    ("#abc", None),
    (None, None),
])
def test_normalize_hex_color(value, expected):
    assert normalize_hex_color(value) == expected
