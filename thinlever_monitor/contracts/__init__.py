"""Contract readers."""
from .thinlever import ThinLeverReader

__all__ = ["ThinLeverReader"]
