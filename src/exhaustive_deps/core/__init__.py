"""
Core Package.

Contains the orchestration around the analysis passes:
- Resource budget and checkpoints
- Result types
- The ``analyze`` state machine
- Recommendation and edit-plan synthesis
- The module-level checker and fixer
"""
