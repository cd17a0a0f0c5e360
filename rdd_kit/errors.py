class RoadDamageError(Exception):
    """
    Base class for errors raised by the detection core.
    """


class InvalidImageError(RoadDamageError, ValueError):
    """
    The image has non-positive dimensions, an unexpected shape, or could not be decoded.
    """


class InvalidModelOutputError(RoadDamageError, ValueError):
    """
    The inference output is missing, non-numeric, or not a whole number of 6-field rows.
    """
