"""Field mapping: transforms, row mapping and header auto-matching."""
