"""Core configuration, security and pure messaging primitives."""
