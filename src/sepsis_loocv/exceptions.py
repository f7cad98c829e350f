"""
Exceptions raised by the evaluation engine.
"""

from typing import Optional


class SepsisEvaluationError(Exception):
    """Base class for all evaluation errors."""


class ConfigurationError(SepsisEvaluationError, ValueError):
    """
    Invalid dataset or run configuration.

    Raised before any classifier is trained: missing target or feature
    columns, missing feature values, unusable label levels, a class with
    zero prevalence when class weights are requested.
    """


class DegenerateFoldError(SepsisEvaluationError, ValueError):
    """An evaluation set lacks one of the two classes (AUC / ROC undefined)."""


class ExternalCapabilityError(SepsisEvaluationError, RuntimeError):
    """
    A classifier training or scoring call failed.

    Parameters
    ----------
    message : str
        Error description
    repeat : int, optional
        Repeat (LOOCV) or run (validation) index in which the failure happened
    fold : int, optional
        Held-out sample index, None outside LOOCV
    """

    def __init__(
        self,
        message: str,
        repeat: Optional[int] = None,
        fold: Optional[int] = None,
    ):
        super().__init__(message)
        self.repeat = repeat
        self.fold = fold

    def __reduce__(self):
        # joblib workers pickle exceptions back to the parent process
        return (self.__class__, (self.args[0], self.repeat, self.fold))
