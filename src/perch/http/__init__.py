"""HTTP primitives — immutable request, chainable response, header and query mappings."""
