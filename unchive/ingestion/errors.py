from __future__ import annotations


class IngestionError(Exception):
    """
    Base class for everything the ingestion pipeline raises on purpose.
    """


class IngestionIOError(IngestionError, OSError):
    """
    The container (or the descriptor catalog) could not be fetched, opened,
    or turned out to be empty. Aborts the ingestion.
    """


class FormatError(IngestionError, ValueError):
    """
    A payload is not the JSON it should be. Fatal for scheme files, contained
    for individual extension entries.
    """


class ValidationError(IngestionError, ValueError):
    """
    Structurally invalid project: missing screen name, missing root,
    unpaired scheme file, duplicate screen names or uids.
    """


class ComponentResolutionFailure(IngestionError):
    """
    Properties of a single component could not be resolved. Never escapes
    the tree builder; the component is flagged faulty instead.
    """

    def __init__(self, component_name: str, reason: str):
        # args must mirror __init__ for pickling.
        super().__init__(component_name, reason)
        self.component_name = component_name
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.component_name}: {self.reason}"
