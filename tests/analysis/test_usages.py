"""
Tests for Usage Collection.

Verifies:
1.  Read/write/readwrite classification of outer references.
2.  Method receivers: mutation allowlist vs plain reads.
3.  Nested closures, comprehensions and shadowing.
4.  Parameter defaults are evaluated in the enclosing scope.
5.  Nested primitive callbacks are skipped.
6.  Guarded getattr steps keep their spelling unless also read plainly.
"""

from exhaustive_deps.enums import UsageKind
from exhaustive_deps.policy import Policy


def test_reads_and_order(collect_usages):
  usages = collect_usages(
    """
    def Comp(a, b):
        use_effect(lambda: print(b.x, a))
    """
  )
  assert [p for p, u in usages.items() if not u.is_external] == ["b.x", "a"]
  assert usages["b.x"].kind is UsageKind.READ
  assert usages["b.x"].identity
  assert usages["print"].is_external


def test_write_targets(collect_usages):
  usages = collect_usages(
    """
    def Comp(state, items, cfg):
        def effect():
            state.count = 1
            items[0] += 1
            del cfg.cache
        use_effect(effect)
    """
  )
  assert usages["state.count"].kind is UsageKind.WRITE
  assert usages["items[0]"].kind is UsageKind.READWRITE
  assert usages["cfg.cache"].kind is UsageKind.WRITE


def test_mutating_method_marks_receiver_written(collect_usages):
  usages = collect_usages(
    """
    def Comp(log, model):
        def effect():
            log.append(1)
            model.render()
        use_effect(effect)
    """
  )
  assert usages["log"].kind is UsageKind.WRITE
  assert usages["model"].kind is UsageKind.READ
  assert usages["model"].receiver_only


def test_custom_mutation_methods(collect_usages):
  usages = collect_usages(
    """
    def Comp(store):
        use_effect(lambda: store.dispatch(1))
    """,
    Policy(mutation_methods=frozenset({"dispatch"})),
  )
  assert usages["store"].kind is UsageKind.WRITE


def test_read_and_write_merge(collect_usages):
  usages = collect_usages(
    """
    def Comp(node):
        def effect():
            node.value = node.value + 1
        use_effect(effect)
    """
  )
  assert usages["node.value"].kind is UsageKind.READWRITE


def test_internal_names_not_recorded(collect_usages):
  usages = collect_usages(
    """
    def Comp(a):
        def effect():
            b = a
            for i in range(3):
                print(i, b)
            return [x for x in b]
        use_effect(effect)
    """
  )
  assert set(usages) == {"a", "range", "print"}


def test_nested_closure_reference(collect_usages):
  usages = collect_usages(
    """
    def Comp(handler):
        def effect():
            def later():
                handler.fire()
            return later
        use_effect(effect)
    """
  )
  assert usages["handler"].receiver_only


def test_inner_shadowing_hides_outer(collect_usages):
  usages = collect_usages(
    """
    def Comp(value):
        def effect():
            run(lambda value: value.x)
        use_effect(effect)
    """
  )
  assert "value" not in usages
  assert "value.x" not in usages


def test_defaults_read_in_enclosing_scope(collect_usages):
  usages = collect_usages(
    """
    def Comp(limit):
        def effect(n=limit.max):
            return n
        use_effect(effect)
    """
  )
  assert list(usages) == ["limit.max"]


def test_opaque_key_records_key_separately(collect_usages):
  usages = collect_usages(
    """
    def Comp(cfg, key):
        use_effect(lambda: cfg[key])
    """
  )
  assert set(usages) == {"cfg[?]", "key"}
  assert usages["cfg[?]"].path.is_opaque


def test_safe_getattr_keeps_its_spelling(collect_usages):
  usages = collect_usages(
    """
    def Comp(cfg):
        use_effect(lambda: getattr(cfg, "mode", None))
    """
  )
  assert list(usages) == ["getattr(cfg, 'mode', None)"]


def test_plain_access_clears_the_guard(collect_usages):
  usages = collect_usages(
    """
    def Comp(cfg):
        def effect():
            print(getattr(cfg, "mode", None), cfg.mode.level)
        use_effect(effect)
    """
  )
  assert set(usages) == {"print", "cfg.mode", "cfg.mode.level"}


def test_slice_and_tuple_index_targets_are_writes(collect_usages):
  usages = collect_usages(
    """
    def Comp(items, grid, start):
        def effect():
            items[1:] = []
            grid[0, 1] = 0
            del items[start:]
        use_effect(effect)
    """
  )
  assert usages["items"].kind is UsageKind.WRITE
  assert usages["grid"].kind is UsageKind.WRITE
  assert usages["start"].kind is UsageKind.READ


def test_nested_primitive_callback_skipped(collect_usages):
  usages = collect_usages(
    """
    def Comp(a, b):
        use_effect(lambda: (use_memo(lambda: b, [b]), a))
    """
  )
  # The nested array argument is still read.
  assert set(usages) == {"use_memo", "b", "a"}
  assert usages["b"].order < usages["a"].order
