"""MinyanMap geospatial core: privacy-preserving clustering and proximity notifications."""

__version__ = "0.1.0"
