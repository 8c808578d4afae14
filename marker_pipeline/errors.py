class FusionError(RuntimeError):
    """Base class for marker pipeline failures."""


class ObjectDataError(FusionError):
    """Tracked-object or pattern data could not be loaded."""


class DetectorInitError(FusionError):
    """The marker detector could not be initialized from calibration."""


class DetectionError(FusionError):
    """The detection library reported an internal error for a frame."""


class ImageFormatError(FusionError):
    """An image frame could not be converted to the detector pixel format."""
