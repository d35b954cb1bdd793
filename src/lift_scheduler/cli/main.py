"""
CLI entry point using Typer.

Provides commands for program planning and session logging:
- init / show-profile: Manage the training profile
- create-program / show-program: 4-week program calendar
- preview: Explainable session plan for a date
- start / log-set / skip / end: Run a training session
- history / progress / records / adherence: Training history analytics
- sync / queue-status: Offline queue replay
- e1rm: Estimated one-rep max
"""

from .app import app
from .commands import history, profile, program, sessions, sync  # noqa: F401  (register commands)

if __name__ == "__main__":
    app()
