"""TallyTasks: Eisenhower-matrix task manager with a key-authenticated REST API."""

__version__ = "1.0.0"
