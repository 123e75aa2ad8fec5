"""Korean shadowing tutor: session controller, scoring and curriculum."""

__version__ = "1.0.0"
