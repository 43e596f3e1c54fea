"""
Error taxonomy for crf_tuner.

Every failure carries the stage it happened in and, where one was in flight,
the CRF value being evaluated. Nothing in the package retries on failure.
"""

from typing import Optional


class CrfTunerError(Exception):
    """Base class for all crf_tuner failures."""

    default_stage = "run"

    def __init__(self, message: str, stage: Optional[str] = None, crf: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.crf = crf

    def __str__(self) -> str:
        context = f"stage={self.stage}"
        if self.crf is not None:
            context += f", crf={self.crf}"
        return f"{self.message} ({context})"


class NoVideoStream(CrfTunerError):
    default_stage = "probe"


class ProbeFailure(CrfTunerError):
    default_stage = "probe"


class DetectionFailure(CrfTunerError):
    default_stage = "scene-detection"


class SampleExtractionFailure(CrfTunerError):
    default_stage = "sample"


class EncodeFailure(CrfTunerError):
    default_stage = "encode"


class ScoreFailure(CrfTunerError):
    default_stage = "score"


class SearchStagnation(CrfTunerError):
    """Interpolation stopped making progress before reaching the tolerance."""
    default_stage = "search"


class OutOfRange(CrfTunerError):
    """Target VMAF cannot be reached anywhere inside the configured CRF bounds."""
    default_stage = "search"


class SearchAborted(CrfTunerError):
    """The CRF search of an optimized encode failed; the run cannot continue."""
    default_stage = "search"
    fatal = True


class OperationCancelled(CrfTunerError):
    default_stage = "cancelled"


def with_context(error: CrfTunerError, stage: Optional[str] = None,
                 crf: Optional[int] = None) -> CrfTunerError:
    """Fill in missing stage/crf context on an error that is being re-raised."""
    if stage is not None and error.stage == error.default_stage:
        error.stage = stage
    if crf is not None and error.crf is None:
        error.crf = crf
    return error
