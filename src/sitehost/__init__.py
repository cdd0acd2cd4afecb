"""sitehost - multi-tenant static site hosting with alias domains."""

__version__ = "1.0.0"
