"""ThinLever position monitor — live health-factor dashboard feed."""

__version__ = "0.1.0"
