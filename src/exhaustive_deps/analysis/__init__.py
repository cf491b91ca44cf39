"""
Static Analysis Package.

LibCST passes that turn one hook callback into a required dependency set.

Modules:
    - ``paths``: Normalizing member accesses into comparable access paths.
    - ``scopes``: The explicit lexical scope tree of a module.
    - ``bindings``: Resolving names against the tree and classifying stability.
    - ``usages``: Collecting read/write usages of outer bindings in a callback.
    - ``requirements``: Reducing usages to the minimal required set.
    - ``declared``: Parsing the declared array and diffing it.
"""
