"""Mirror a bookmark service's collections into a local bookmark tree."""

__version__ = "0.1.0"
