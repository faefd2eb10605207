"""
TaskFlow client core.

Holds the canonical projects/tasks state for a signed-in user, writes changes
through to the hosted backend, and derives the filtered task list and stats
the UI renders.
"""

__version__ = "0.1.0"
