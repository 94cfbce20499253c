"""Interactive partial-commit core: diff model, selection state and patch synthesis."""

__version__ = "0.1.0"
