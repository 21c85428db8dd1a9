"""TESSERA command-line interface."""
