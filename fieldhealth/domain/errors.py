"""
Error taxonomy for the field analysis pipeline.
"""


class AnalysisFailedError(Exception):
    """Raised when a field analysis cannot produce a result."""
    
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ImageDecodeError(AnalysisFailedError):
    """Raised when the source image cannot be decoded into pixels."""
    pass


class AnalysisCancelledError(Exception):
    """Raised when an in-flight analysis is superseded by a newer one."""
    pass
