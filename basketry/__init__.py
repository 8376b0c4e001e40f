"""basketry: position accounting for basket tokens."""
