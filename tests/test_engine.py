import pytest

from replace_strings import (
    InvalidArgumentError,
    PatternSet,
    ReplacementPair,
    scan,
    split_line_ending,
    transform_line,
)


def make(*args):
    return PatternSet.from_args(args)


def test_longest_match_wins_regardless_of_order():
    assert transform_line("abc", make("a", "Y", "ab", "X")).text == "Xc"
    assert transform_line("abc", make("ab", "X", "a", "Y")).text == "Xc"


def test_matches_do_not_overlap():
    assert transform_line("aaa", make("aa", "b")).text == "ba"


def test_replaced_text_is_not_rescanned():
    result = transform_line("ab", make("a", "b", "b", "c"))
    assert result.text == "bc"


def test_multiple_pairs():
    result = transform_line("foo and some", make("foo", "bar", "some", "other"))
    assert result == ("bar and other", True)


def test_swap_is_simultaneous():
    assert transform_line("cat dog", make("cat", "dog", "dog", "cat")).text == "dog cat"


def test_identity_pair_reports_change():
    result = transform_line("xyx", make("x", "x"))
    assert result.text == "xyx"
    assert result.changed is True


def test_no_match_is_unchanged():
    result = transform_line("hello", make("zz", "y"))
    assert result == ("hello", False)


def test_empty_line():
    assert transform_line("", make("a", "b")) == ("", False)


def test_deletion():
    assert transform_line("a-b-c", make("-", "")).text == "abc"


@pytest.mark.parametrize("line", ["", "abc", "aaaa", "empty everywhere"])
def test_empty_pattern_never_matches(line):
    result = transform_line(line, make("", "boom"))
    assert result == (line, False)


def test_empty_pattern_alongside_real_ones():
    patterns = make("", "boom", "e", "E")
    assert transform_line("eel", patterns).text == "EEl"


def test_equal_length_tie_goes_to_first_declared():
    patterns = make("ab", "first", "ab", "second")
    assert [p.replacement for p in patterns] == ["first", "second"]
    assert transform_line("ab", patterns).text == "first"


def test_sort_is_descending_and_stable():
    patterns = make("b", "1", "ccc", "2", "a", "3", "dd", "4")
    assert [p.pattern for p in patterns] == ["ccc", "dd", "b", "a"]
    assert len(patterns) == 4


def test_bytes_are_matched_byte_for_byte():
    patterns = make("é".encode(), b"e", b"\xff", b"?")
    result = transform_line("café ".encode() + b"\xff", patterns)
    assert result.text == b"cafe ?"


def test_scan_consumes_whole_line_once():
    line = "the cat sat on the mat, cattle"
    patterns = make("cat", "dog", "at", "@", "the", "", "t", "T")
    steps = list(scan(line, patterns))
    assert "".join(s.consumed for s in steps) == line
    assert sum(len(s.consumed) for s in steps) == len(line)
    assert "".join(s.emitted for s in steps) == transform_line(line, patterns).text


def test_scan_groups_unmatched_runs():
    steps = list(scan("xxaxx", make("a", "b")))
    assert [(s.consumed, s.emitted, s.matched) for s in steps] == [
        ("xx", "xx", False),
        ("a", "b", True),
        ("xx", "xx", False),
    ]


def test_large_replacement_growth():
    line = "a" * 1000
    result = transform_line(line, make("a", "bcd"))
    assert result.text == "bcd" * 1000


@pytest.mark.parametrize("args", [[], ["only"], ["a", "b", "c"]])
def test_from_args_rejects_bad_counts(args):
    with pytest.raises(InvalidArgumentError):
        PatternSet.from_args(args)


def test_empty_pattern_set_rejected():
    with pytest.raises(InvalidArgumentError):
        PatternSet([])


def test_pairs_are_immutable():
    pair = ReplacementPair(b"a", b"b")
    with pytest.raises(AttributeError):
        pair.pattern = b"c"


@pytest.mark.parametrize("raw, body, ending", [
    (b"abc\n", b"abc", b"\n"),
    (b"abc", b"abc", b""),
    (b"abc\r\n", b"abc\r", b"\n"),
    (b"\n", b"", b"\n"),
    ("text\n", "text", "\n"),
])
def test_split_line_ending(raw, body, ending):
    assert split_line_ending(raw) == (body, ending)
