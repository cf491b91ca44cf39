"""
Tests for the Declared-Dependency Comparator.

Verifies:
1.  Array state classification (absent / literal / non-literal).
2.  Unsupported elements are kept verbatim with a reason.
3.  Missing, unnecessary and duplicate sets are mutually exclusive.
4.  Ancestors satisfy descendants, except the bare root of a cell.
"""

import libcst as cst
import pytest

from exhaustive_deps.analysis.declared import DependencyComparator, parse_declared
from exhaustive_deps.analysis.paths import AccessPath, normalize
from exhaustive_deps.analysis.requirements import Requirements
from exhaustive_deps.enums import ArrayState


def P(code: str) -> AccessPath:
  return normalize(cst.parse_expression(code))


def make_requirements(required=(), collapsed=(), unknown=(), cells=()):
  return Requirements(
    required=tuple(P(c) for c in required),
    collapsed=frozenset(P(c) for c in collapsed),
    unknown=tuple(unknown),
    cell_roots=frozenset(cells),
  )


def compare(code, require_array=False, **kwargs):
  node = cst.parse_expression(code) if code is not None else None
  return DependencyComparator(make_requirements(**kwargs)).compare(parse_declared(node), require_array)


@pytest.mark.parametrize(
  "code, state",
  [
    (None, ArrayState.ABSENT),
    ("None", ArrayState.ABSENT),
    ("[]", ArrayState.LITERAL),
    ("(a, b)", ArrayState.LITERAL),
    ("deps", ArrayState.NON_LITERAL),
    ("list(deps)", ArrayState.NON_LITERAL),
  ],
)
def test_array_state(code, state):
  node = cst.parse_expression(code) if code is not None else None
  assert parse_declared(node).state is state


def test_unsupported_entries():
  array = parse_declared(cst.parse_expression("[a, *rest, load(), cfg[key], items[1:]]"))
  reasons = [(e.text, e.unsupported_reason) for e in array.unsupported]
  assert reasons == [
    ("*rest", "spread element"),
    ("load()", "not a static path"),
    ("cfg[key]", "dynamic key"),
    ("items[1:]", "not a static path"),
  ]
  assert array.entries[0].path == P("a")
  assert array.element_count == 5


def test_missing_and_unnecessary():
  result = compare("[b, theme]", required=["a", "b"])
  assert result.missing == (P("a"),)
  assert result.unnecessary == (P("theme"),)
  assert result.removals == frozenset({1})


def test_ancestor_satisfies_descendant():
  result = compare("[user]", required=["user.name"])
  assert result.missing == ()
  assert result.unnecessary == ()


def test_cell_root_does_not_satisfy_accessor():
  result = compare("[a]", required=["a.value"], cells=["a"])
  assert result.missing == (P("a.value"),)
  assert result.unnecessary == (P("a"),)


def test_collapsed_path_is_not_unnecessary():
  result = compare("[user, user.name]", required=["user"], collapsed=["user.name"])
  assert result.unnecessary == ()
  assert result.duplicates == ()


def test_duplicates_reported_once_and_removed():
  result = compare("[a, a, a]", required=["a"])
  assert result.duplicates == (P("a"),)
  assert result.unnecessary == ()
  assert result.removals == frozenset({1, 2})


def test_repeated_unneeded_path_is_only_unnecessary():
  result = compare("[x, x]")
  assert result.unnecessary == (P("x"),)
  assert result.duplicates == ()
  assert result.removals == frozenset({0, 1})


def test_prefix_of_unknown_is_needed():
  opaque = normalize(cst.parse_expression("cfg[key]"))
  result = compare("[cfg]", unknown=[opaque])
  assert result.unnecessary == ()


def test_absent_array_only_diffed_when_required():
  assert compare(None, required=["a"]).missing == ()
  assert compare(None, require_array=True, required=["a"]).missing == (P("a"),)


def test_non_literal_is_not_diffed():
  result = compare("deps", required=["a"])
  assert (result.missing, result.unnecessary, result.duplicates) == ((), (), ())


def test_unsupported_entries_never_classified():
  result = compare("[*extra, a]", required=["a"])
  assert result.unnecessary == ()
  assert result.removals == frozenset()
