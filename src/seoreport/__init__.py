"""SEO report service backed by the DataForSEO API."""

__version__ = "0.1.0"
