"""QueryPlane - WHERE-clause ordering optimizer for Spring Data repositories."""

__version__ = "0.1.0"
