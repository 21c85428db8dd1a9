"""TESSERA

A test isolation and mock-verification engine. Each test unit runs against a
disposable view of a migrated-and-seeded baseline, collaborators can be
replaced with verifiable substitutes, and a lifecycle-aware runner turns every
execution into a classified outcome.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
