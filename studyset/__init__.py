"""studyset: flashcard study core with SM-2 scheduling and cached speech."""

__version__ = "1.0.0"
