"""Pipeline d'acquisition de contenus et d'indexation vectorielle (curator)."""

__version__ = "0.1.0"
