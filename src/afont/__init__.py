"""Local full-text mirror and search ranking for the Adobe Fonts catalog."""

__version__ = "0.1.0"
