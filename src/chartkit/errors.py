from __future__ import annotations


class ChartkitError(Exception):
    """Base class for errors that abort a chart load cycle."""


class InputShapeError(ChartkitError, ValueError):
    """Records are missing, not a sequence, empty, or lack required fields."""


class DataSourceError(ChartkitError):
    """The remote record source rejected the query or no source was configured."""


class GeographyError(ChartkitError):
    """The geography document could not be loaded or has no features."""
