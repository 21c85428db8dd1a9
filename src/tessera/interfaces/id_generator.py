"""Port for identifier sources.

Runs, baselines and working views are all named by an `IdGenerator`. The
runner and the stores take one as a constructor argument so tests can swap
in deterministic ids.
"""

import abc

# pylint: disable=too-few-public-methods


class IdGenerator(abc.ABC):
    """Produces identifiers that are unique for the generator's lifetime.

    Implementations must be safe to call from several worker threads.
    """

    @abc.abstractmethod
    def new_id(self) -> str:
        """Return a fresh, non-empty identifier."""
