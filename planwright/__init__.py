"""
PLANWRIGHT — model-proposed changes for a personal planner workspace,
validated, previewed, applied and undoable.
"""

__version__ = "0.3.0"
__codename__ = "PLANWRIGHT"
__tagline__ = "Say it. Preview it. Undo it."
