"""
Scope/Binding Resolution.

The ``BindingResolver`` maps each identifier referenced from an analysed callback
to the declaration it denotes, using the module's ``ScopeTree``, and classifies
that declaration:

*   **Internal**: declared inside the callback (its parameters, its locals, and
    the locals of any closure nested in it). Never tracked.
*   **External**: unresolved names (builtins, star-imports). Always stable.
*   **Binding**: everything else, classified by kind and stability.

A resolver lives for exactly one analysis; its memo table is an instance
attribute so no lookup state leaks between callbacks or files.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple, Union

from exhaustive_deps.analysis.scopes import Declaration, Scope, ScopeTree
from exhaustive_deps.enums import BindingKind, DeclarationKind, ScopeKind, Stability
from exhaustive_deps.policy import NOT_CELL, CellMatch, Policy
from exhaustive_deps.utils.cst_utils import callee_name


@dataclass(frozen=True)
class Binding:
  """
  A named declaration plus its resolved scope and stability class.
  """

  name: str
  scope_id: int
  kind: BindingKind
  stability: Stability
  cell: CellMatch = NOT_CELL
  declarations: Tuple[Declaration, ...] = ()

  @property
  def is_stable(self) -> bool:
    return self.stability is Stability.STABLE

  @property
  def is_cell(self) -> bool:
    return self.kind is BindingKind.REACTIVE_CELL

  @property
  def is_probable_cell(self) -> bool:
    return self.cell.is_probable

  @property
  def accessor(self) -> Optional[str]:
    return self.cell.suffix


class _Internal:
  """Sentinel for names declared inside the analysed callback."""

  def __repr__(self) -> str:
    return "INTERNAL"


INTERNAL = _Internal()

Resolution = Union[Binding, _Internal, None]

_REBINDING_KINDS = {
  DeclarationKind.AUGMENTED,
  DeclarationKind.DELETE,
  DeclarationKind.LOOP,
  DeclarationKind.WALRUS,
  DeclarationKind.WITH,
  DeclarationKind.EXCEPT,
  DeclarationKind.MATCH,
}


class BindingResolver:
  """
  Resolves references made from inside one callback.
  """

  def __init__(self, tree: ScopeTree, callback_scope: Scope, policy: Policy):
    """
    Initializes the resolver.

    Args:
        tree: The read-only scope tree of the module.
        callback_scope: Scope opened by the analysed callback.
        policy: The injected analysis policy.
    """
    self.tree = tree
    self.callback_scope = callback_scope
    self.policy = policy
    self._bindings: Dict[Tuple[int, str], Binding] = {}

  def resolve(self, name: str, scope: Scope) -> Resolution:
    """
    Resolves ``name`` referenced from ``scope``.

    Args:
        name: The identifier.
        scope: The scope in which the reference occurs.

    Returns:
        INTERNAL, None (external / always-stable) or the classified Binding.
    """
    owner = self.tree.lookup(name, scope)
    if owner is None:
      return None
    if owner.is_within(self.callback_scope):
      return INTERNAL
    key = (owner.scope_id, name)
    binding = self._bindings.get(key)
    if binding is None:
      binding = self._classify(name, owner, tuple(owner.declarations[name]))
      self._bindings[key] = binding
    return binding

  def resolve_outer(self, name: str) -> Resolution:
    """Resolves a name as seen from the scope enclosing the callback."""
    return self.resolve(name, self.callback_scope.parent or self.callback_scope)

  # --- Classification ---

  def _classify(self, name: str, owner: Scope, decls: Tuple[Declaration, ...]) -> Binding:
    kind = self._kind(owner, decls)
    cell = self.policy.cell_predicate(name, decls)

    if cell.is_cell:
      kind = BindingKind.REACTIVE_CELL

    if name in self.policy.stable_overrides:
      stability = Stability.STABLE
    elif cell.is_probable:
      stability = Stability.UNSTABLE
    elif kind in (
      BindingKind.MODULE_CONST,
      BindingKind.IMPORT,
      BindingKind.STATE_SETTER,
      BindingKind.REF_CONTAINER,
      BindingKind.REACTIVE_CELL,
      BindingKind.EFFECT_EVENT,
    ):
      stability = Stability.STABLE
    else:
      stability = Stability.UNSTABLE

    return Binding(
      name=name,
      scope_id=owner.scope_id,
      kind=kind,
      stability=stability,
      cell=cell,
      declarations=decls,
    )

  def _kind(self, owner: Scope, decls: Sequence[Declaration]) -> BindingKind:
    first = decls[0]
    single = len(decls) == 1

    if first.kind is DeclarationKind.PARAMETER:
      return BindingKind.PARAMETER
    if all(d.kind is DeclarationKind.IMPORT for d in decls):
      return BindingKind.IMPORT
    if first.kind is DeclarationKind.LOOP and all(d.kind is DeclarationKind.LOOP for d in decls):
      return BindingKind.LOOP_VAR

    if single and first.kind is DeclarationKind.ASSIGNMENT:
      factory = callee_name(first.value)
      if first.unpack_index is None:
        if factory in self.policy.ref_factories:
          return BindingKind.REF_CONTAINER
        if factory in self.policy.effect_event_factories:
          return BindingKind.EFFECT_EVENT
      elif first.unpack_index == 1 and first.unpack_size == 2 and factory in self.policy.state_factories:
        return BindingKind.STATE_SETTER

    if owner.kind is ScopeKind.MODULE and self._is_module_constant(decls):
      return BindingKind.MODULE_CONST
    return BindingKind.LOCAL

  @staticmethod
  def _is_module_constant(decls: Sequence[Declaration]) -> bool:
    if len(decls) != 1:
      return False
    decl = decls[0]
    if decl.kind in _REBINDING_KINDS or decl.kind is DeclarationKind.ANNOTATION:
      return False
    # Bound from inside a function through ``global``.
    return decl.origin_scope_id == 0
