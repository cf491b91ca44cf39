"""
Tests for Scope/Binding Resolution.

Verifies:
1.  Names declared inside the callback resolve to INTERNAL.
2.  Builtins resolve to None (external, always stable).
3.  Binding kinds and stability for setters, refs, cells, imports and constants.
4.  Policy overrides and probable-cell naming.
"""

import textwrap

import libcst as cst
import pytest

from exhaustive_deps.analysis.bindings import INTERNAL, Binding, BindingResolver
from exhaustive_deps.analysis.scopes import build_scope_tree
from exhaustive_deps.enums import BindingKind, CellVerdict, ScopeKind, Stability
from exhaustive_deps.policy import Policy

SOURCE = """
import json
from reactpy import hooks

LIMIT = 10
registry = {}
registry = {"a": 1}

def Comp(user, items):
    count, set_count = use_state(0)
    box = use_ref(None)
    on_tick = use_effect_event(lambda: None)
    total = signal(0)
    status_signal = get_status()
    local = [1, 2]
    for row in items:
        pass
    use_effect(lambda: inner_name)
"""


@pytest.fixture
def resolver():
  def _make(policy=None):
    module = cst.parse_module(textwrap.dedent(SOURCE))
    tree = build_scope_tree(module)
    lam = next(s for s in tree.scopes if s.kind is ScopeKind.LAMBDA and s.parent.name == "Comp")
    return BindingResolver(tree, lam, policy or Policy())

  return _make


@pytest.mark.parametrize(
  "name, kind, stability",
  [
    ("user", BindingKind.PARAMETER, Stability.UNSTABLE),
    ("count", BindingKind.LOCAL, Stability.UNSTABLE),
    ("set_count", BindingKind.STATE_SETTER, Stability.STABLE),
    ("box", BindingKind.REF_CONTAINER, Stability.STABLE),
    ("on_tick", BindingKind.EFFECT_EVENT, Stability.STABLE),
    ("total", BindingKind.REACTIVE_CELL, Stability.STABLE),
    ("local", BindingKind.LOCAL, Stability.UNSTABLE),
    ("row", BindingKind.LOOP_VAR, Stability.UNSTABLE),
    ("json", BindingKind.IMPORT, Stability.STABLE),
    ("hooks", BindingKind.IMPORT, Stability.STABLE),
    ("LIMIT", BindingKind.MODULE_CONST, Stability.STABLE),
    ("registry", BindingKind.LOCAL, Stability.UNSTABLE),
  ],
)
def test_binding_classification(resolver, name, kind, stability):
  binding = resolver().resolve_outer(name)
  assert isinstance(binding, Binding)
  assert binding.kind is kind
  assert binding.stability is stability


def test_builtins_are_external(resolver):
  assert resolver().resolve_outer("print") is None


def test_callback_locals_are_internal():
  module = cst.parse_module(
    textwrap.dedent(
      """
      def Comp(a):
          def effect():
              b = a
              return b
      """
    )
  )
  tree = build_scope_tree(module)
  effect = next(s for s in tree.scopes if s.name == "effect")
  res = BindingResolver(tree, effect, Policy())
  assert res.resolve("b", effect) is INTERNAL
  assert isinstance(res.resolve("a", effect), Binding)


def test_probable_cell_is_unstable(resolver):
  binding = resolver().resolve_outer("status_signal")
  assert binding.cell.verdict is CellVerdict.PROBABLY_CELL
  assert binding.is_probable_cell
  assert not binding.is_cell
  assert binding.stability is Stability.UNSTABLE
  assert binding.accessor == "value"


def test_definite_cell_has_accessor(resolver):
  binding = resolver().resolve_outer("total")
  assert binding.is_cell
  assert binding.accessor == "value"


def test_stable_override(resolver):
  binding = resolver(Policy(stable_overrides=frozenset({"user"}))).resolve_outer("user")
  assert binding.kind is BindingKind.PARAMETER
  assert binding.is_stable


def test_resolution_is_memoized(resolver):
  res = resolver()
  assert res.resolve_outer("user") is res.resolve_outer("user")
