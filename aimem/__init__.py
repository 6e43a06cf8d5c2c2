"""AI memory guard: metadata-driven modification gating for AI coding agents."""

__version__ = "0.1.0"
