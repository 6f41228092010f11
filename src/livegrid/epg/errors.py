class EpgError(RuntimeError):
    pass


class LoadFailure(EpgError):
    """A channel batch or program-window extension could not be fetched."""


class FatalLoadFailure(LoadFailure):
    """The very first channel batch failed; there is no guide to show."""


class ActionFailure(EpgError):
    """A popup action (program fetch, record, favorite) failed."""
