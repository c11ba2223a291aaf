"""Exceptions raised by the profile synthesizer and the mesh builder."""


class ColTerrainError(ValueError):
    """Base class for invalid input to the col terrain pipeline."""


class InvalidColData(ColTerrainError):
    """A col record is missing required numeric fields or has non-positive dimensions."""


class InsufficientSamples(ColTerrainError):
    """Too few elevation samples to build a terrain grid."""
