"""
Engine Exceptions
"""


class DocketEngineError(Exception):
    """Base class for docket engine errors"""


class MatterNotFoundError(DocketEngineError):
    """Raised when a matter id does not resolve to a stored matter"""


class FilingNotFoundError(DocketEngineError):
    """Raised when a filing id does not resolve to a stored filing"""


class ActionNotFoundError(DocketEngineError):
    """Raised when an action id does not resolve to a stored action"""


class TextGenerationError(DocketEngineError):
    """Raised by the text-generation client when the capability fails"""
