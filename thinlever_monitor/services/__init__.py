"""Service modules"""
from .distributor import UPDATE_EVENT, Distributor

__all__ = ["Distributor", "UPDATE_EVENT"]
