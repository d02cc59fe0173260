"""Translate HTTP query parameters into whitelisted query descriptions,
and render the results with content negotiation.
"""

__version__ = "1.0.0"
