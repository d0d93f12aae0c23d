"""Property-based tests for status line parsing using Hypothesis.

These tests verify invariants of the parser:
- parse_change never raises (returns Result)
- Every recognized status letter round-trips to its ChangeState
- Unrecognized letters are always errors
- sort_changes yields a path-ordered permutation
"""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from gitdeck.core.result import Err, Ok
from gitdeck.git import Change, ChangeState, parse_change, sort_changes

# === Strategies ===

# Paths git would print unquoted: no tabs, newlines or quotes
path_strategy = st.text(
    alphabet=st.characters(
        blacklist_categories=("Cs",),
        blacklist_characters='\t\n\r"',
    ),
    min_size=1,
    max_size=40,
).filter(lambda s: s.strip() == s and s != "")

simple_state_strategy = st.sampled_from(
    [ChangeState.ADDED, ChangeState.MODIFIED, ChangeState.DELETED, ChangeState.CONFLICTED]
)

unknown_letter_strategy = st.characters(
    blacklist_categories=("Cs",),
    blacklist_characters="AMDRU\t\n\r",
)


# === Property Tests ===


@given(st.text(), st.booleans(), st.booleans())
def test_parse_never_raises(line: str, tracked: bool, staged: bool) -> None:
    result = parse_change(line, tracked=tracked, staged=staged)
    assert isinstance(result, (Ok, Err))


@given(simple_state_strategy, path_strategy, st.booleans())
def test_simple_states_round_trip(state: ChangeState, path: str, staged: bool) -> None:
    result = parse_change(f"{state.letter}\t{path}", tracked=True, staged=staged)

    assert isinstance(result, Ok)
    assert result.value.state is state
    assert result.value.path == path
    assert result.value.is_staged is staged
    assert result.value.original_path is None


@given(path_strategy, path_strategy, st.integers(min_value=0, max_value=100))
def test_renames_round_trip(old: str, new: str, score: int) -> None:
    result = parse_change(f"R{score:03d}\t{old}\t{new}", tracked=True, staged=True)

    assert isinstance(result, Ok)
    assert result.value.paths == (old, new)
    assert result.value.similarity == score


@given(unknown_letter_strategy, path_strategy)
def test_unknown_letters_are_errors(letter: str, path: str) -> None:
    assert isinstance(parse_change(f"{letter}\t{path}", tracked=True, staged=False), Err)


@given(path_strategy)
def test_untracked_is_always_unstaged_addition(path: str) -> None:
    result = parse_change(path, tracked=False, staged=True)

    assert isinstance(result, Ok)
    assert result.value.state is ChangeState.ADDED
    assert not result.value.is_staged


@given(st.lists(path_strategy, max_size=20))
def test_sort_is_ordered_permutation(paths: list[str]) -> None:
    changes = [Change(ChangeState.MODIFIED, p) for p in paths]
    ordered = [c.path for c in sort_changes(changes)]

    assert sorted(paths) == ordered


@given(st.lists(st.tuples(simple_state_strategy, path_strategy), max_size=20))
def test_sort_is_idempotent(entries: list[tuple[ChangeState, str]]) -> None:
    once = sort_changes(Change(state, path) for state, path in entries)

    assert sort_changes(once) == once
    assert [c.state for c in sort_changes(once)] == [c.state for c in once]
