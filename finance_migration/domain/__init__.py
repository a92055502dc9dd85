"""Migration domain: pure types, lifecycle and validators. ZERO I/O."""
