"""Service layer for TESSERA: mocks, lifecycle and the runner."""
