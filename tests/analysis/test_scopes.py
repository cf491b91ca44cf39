"""
Tests for the Lexical Scope Tree.

Verifies:
1.  Function locality and class body invisibility.
2.  `global` / `nonlocal` redirects.
3.  Comprehension targets vs walrus targets.
4.  Scope chains built from callback nodes.
"""

import textwrap

import libcst as cst
import pytest

from exhaustive_deps.analysis.scopes import build_scope_tree
from exhaustive_deps.enums import DeclarationKind, ScopeKind


def tree_of(code: str):
  module = cst.parse_module(textwrap.dedent(code))
  return module, build_scope_tree(module)


def scope_named(tree, name):
  return next(s for s in tree.scopes if s.name == name)


def test_module_and_function_scopes():
  _, tree = tree_of(
    """
    import os
    LIMIT = 3

    def comp(a, *rest, key=None, **kw):
        b = a
    """
  )
  assert tree.module.kind is ScopeKind.MODULE
  assert set(tree.module.declarations) == {"os", "LIMIT", "comp"}
  comp = scope_named(tree, "comp")
  assert set(comp.declarations) == {"a", "rest", "key", "kw", "b"}
  assert comp.declarations["a"][0].kind is DeclarationKind.PARAMETER


def test_innermost_declaration_wins():
  _, tree = tree_of(
    """
    x = 1
    def outer():
        x = 2
        def inner():
            return x
    """
  )
  inner = scope_named(tree, "inner")
  assert tree.lookup("x", inner) is scope_named(tree, "outer")
  assert tree.lookup("print", inner) is None


def test_class_body_invisible_to_methods():
  _, tree = tree_of(
    """
    class Box:
        size = 1
        def grow(self):
            return size
    """
  )
  grow = scope_named(tree, "grow")
  box = scope_named(tree, "Box")
  assert tree.lookup("size", grow) is None
  assert tree.lookup("size", box) is box


def test_global_redirect_declares_in_module():
  _, tree = tree_of(
    """
    counter = 0
    def bump():
        global counter
        counter += 1
    """
  )
  bump = scope_named(tree, "bump")
  assert not bump.owns("counter")
  decls = tree.module.declarations["counter"]
  assert [d.kind for d in decls] == [DeclarationKind.ASSIGNMENT, DeclarationKind.AUGMENTED]
  assert decls[1].origin_scope_id == bump.scope_id


def test_nonlocal_redirect_declares_in_enclosing_function():
  _, tree = tree_of(
    """
    def outer():
        total = 0
        def add():
            nonlocal total
            total = total + 1
    """
  )
  outer = scope_named(tree, "outer")
  add = scope_named(tree, "add")
  assert len(outer.declarations["total"]) == 2
  assert tree.lookup("total", add) is outer


def test_comprehension_targets_are_private():
  _, tree = tree_of(
    """
    def comp(rows):
        names = [r.name for r in rows if (last := r)]
    """
  )
  comp = scope_named(tree, "comp")
  listcomp = next(s for s in tree.scopes if s.kind is ScopeKind.COMPREHENSION)
  assert listcomp.owns("r")
  assert not comp.owns("r")
  assert comp.owns("last")
  assert comp.declarations["last"][0].kind is DeclarationKind.WALRUS


def test_unpacked_assignment_positions():
  _, tree = tree_of(
    """
    def comp():
        count, set_count = use_state(0)
    """
  )
  decl = scope_named(tree, "comp").declarations["set_count"][0]
  assert (decl.unpack_index, decl.unpack_size) == (1, 2)
  assert isinstance(decl.value, cst.Call)


def test_imports_bind_root_or_alias():
  _, tree = tree_of(
    """
    import os.path
    import numpy as np
    from reactpy import hooks, use_state as state
    """
  )
  assert set(tree.module.declarations) == {"os", "np", "hooks", "state"}


def test_chain_for_lambda():
  module, tree = tree_of(
    """
    def comp(a):
        use_effect(lambda: a)
    """
  )
  lam = next(s for s in tree.scopes if s.kind is ScopeKind.LAMBDA)
  chain = tree.chain_for(lam.node)
  assert chain.scope is scope_named(tree, "comp")
  assert [s.kind for s in chain] == [ScopeKind.FUNCTION, ScopeKind.MODULE]
  assert chain.lookup("a") is chain.scope


def test_chain_for_unknown_node_raises():
  _, tree = tree_of("x = 1\n")
  with pytest.raises(KeyError):
    tree.chain_for(cst.parse_expression("lambda: 0"))
