"""Configuration-driven construction and duplication of content entity graphs."""

__version__ = "1.0.0"
