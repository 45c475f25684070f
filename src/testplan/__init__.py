"""testplan — split a project's test files across parallel CI nodes."""

__version__ = "0.1.0"
