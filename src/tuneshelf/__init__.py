"""tuneshelf - music library core: metadata reconciliation and reactive library views."""

__version__ = "0.1.0"
