"""
Tests for Access Path Normalization.

Verifies:
1.  Attribute, literal key and getattr steps produce comparable paths.
2.  Dynamic keys end the path in OPAQUE, which never equals another path.
3.  Slices and calls terminate the path and expose their operands.
4.  Ancestor relationships used by the collapse and satisfaction rules.
"""

import libcst as cst
import pytest

from exhaustive_deps.analysis.paths import (
  OPAQUE,
  AccessPath,
  Segment,
  literal_key,
  match_path,
  normalize,
)
from exhaustive_deps.enums import SegmentKind


def path_of(code: str) -> AccessPath:
  return normalize(cst.parse_expression(code))


def test_attribute_chain():
  path = path_of("user.profile.name")
  assert path.root == "user"
  assert path.segments == (Segment(SegmentKind.ATTR, "profile"), Segment(SegmentKind.ATTR, "name"))
  assert path.render() == "user.profile.name"


def test_literal_keys_render_as_python():
  path = path_of("rows[0]['id'][-1]")
  assert [s.value for s in path.segments] == [0, "id", -1]
  assert path.render() == "rows[0]['id'][-1]"


def test_concatenated_string_key():
  assert literal_key(cst.parse_expression("'a' 'b'")) == "ab"
  assert literal_key(cst.parse_expression("+3")) == 3
  assert literal_key(cst.parse_expression("b'k'")) == b"k"
  assert literal_key(cst.parse_expression("name")) is None


def test_getattr_matches_attribute_access():
  assert path_of('getattr(cfg, "mode")') == path_of("cfg.mode")


def test_safe_getattr_adds_same_segment_marked_guarded():
  match = match_path(cst.parse_expression('getattr(cfg, "mode", None).level'))
  assert match.path == path_of("cfg.mode.level")
  assert [seg.guarded for seg in match.path.segments] == [True, False]
  assert len(match.detached) == 1


@pytest.mark.parametrize(
  "code, rendered",
  [
    ('getattr(props, "on_close", None)', "getattr(props, 'on_close', None)"),
    ('getattr(getattr(a, "b", None), "c", None).d', "getattr(getattr(a, 'b', None), 'c', None).d"),
    ('getattr(data, "class")', "getattr(data, 'class')"),
    ('getattr(data, "foo-bar").x', "getattr(data, 'foo-bar').x"),
    ('getattr(data, "name")', "data.name"),
    ("rows[b'k']", "rows[b'k']"),
  ],
)
def test_render_round_trips_through_normalize(code, rendered):
  path = path_of(code)
  assert path.render() == rendered
  again = path_of(rendered)
  assert again == path
  assert again.render() == rendered


def test_drop_guards_keeps_identity_when_unchanged():
  guarded = path_of('getattr(cfg, "mode", None)')
  assert guarded.drop_guards(set()) is guarded
  plain = guarded.drop_guards({path_of("cfg.mode")})
  assert plain == guarded
  assert plain.render() == "cfg.mode"


def test_dynamic_key_is_opaque():
  match = match_path(cst.parse_expression("cfg[key].inner"))
  assert match.path.is_opaque
  assert match.path.render() == "cfg[?]"
  assert isinstance(match.detached[0], cst.Name)
  assert match.detached[0].value == "key"


def test_opaque_paths_never_equal():
  first = path_of("cfg[key]")
  second = path_of("cfg[key]")
  assert first == first
  assert first != second
  assert first.finite_prefix() == second.finite_prefix() == AccessPath("cfg")
  assert len({first, second}) == 2


def test_equal_paths_hash_together():
  assert len({path_of("a.b"), path_of("a.b"), path_of("a['b']")}) == 2


def test_slice_terminates_path():
  match = match_path(cst.parse_expression("items[start:stop].count"))
  assert match.path == AccessPath("items")
  assert match.exact is False
  assert sorted(d.value for d in match.detached) == ["start", "stop"]


def test_call_base_is_not_a_path():
  assert match_path(cst.parse_expression("load().value")) is None
  assert match_path(cst.parse_expression("(1).real")) is None


def test_parenthesized_steps():
  assert path_of("(state.user).name") == path_of("state.user.name")


@pytest.mark.parametrize(
  "ancestor, descendant, expected",
  [
    ("a", "a.b", True),
    ("a.b", "a.b.c", True),
    ("a.b", "a.b", False),
    ("a.b", "a", False),
    ("a.b", "a.c.d", False),
    ("a", "b.a", False),
  ],
)
def test_is_ancestor_of(ancestor, descendant, expected):
  assert path_of(ancestor).is_ancestor_of(path_of(descendant)) is expected


def test_opaque_ancestry():
  opaque = path_of("cfg[key]")
  assert AccessPath("cfg").is_ancestor_of(opaque)
  assert not opaque.is_ancestor_of(AccessPath("cfg", (OPAQUE, Segment(SegmentKind.ATTR, "x"))))
  assert opaque.has_prefix(AccessPath("cfg"))


def test_ancestors_shallowest_first():
  assert [p.render() for p in path_of("a.b.c").ancestors()] == ["a", "a.b"]
  assert path_of("a.b").parent() == AccessPath("a")
  assert AccessPath("a").parent() is None
