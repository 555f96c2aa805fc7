"""
Error taxonomy for the detection pipeline.

Fatal (initialization-time):
    - InvalidModelShape: the engine's tensor shapes break the layout contract.
    - EngineConstructionFailure: the engine cannot be built from the model.

Recoverable:
    - LabelLoadFailure: the label resource is missing or unreadable. The
      session logs it and continues with whatever labels it has.
    - EngineExecutionFailure: a single inference call failed. The session
      reports "no detections" for that frame and stays ready.

SessionStateError signals a lifecycle misuse (e.g. detecting on a failed
or released session).
"""


class DetectorError(Exception):
    """Base class for all errors raised by this package."""


class InvalidModelShape(DetectorError, ValueError):
    """Input/output tensor shapes do not match the expected layout."""


class EngineConstructionFailure(DetectorError, RuntimeError):
    """The inference engine could not be built."""


class EngineExecutionFailure(DetectorError, RuntimeError):
    """A single inference invocation failed."""


class LabelLoadFailure(DetectorError, OSError):
    """The label table could not be read."""


class SessionStateError(DetectorError, RuntimeError):
    """An operation was invoked in a state that does not allow it."""
