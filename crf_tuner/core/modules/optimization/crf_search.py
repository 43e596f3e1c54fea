"""
CRF search for crf_tuner.

Finds the CRF whose encode of the source scores closest to a target VMAF,
using interpolation search over the CRF range.

The search works on positions: position ``p`` stands for ``crf = crf_min - p``
so position 0 is the lowest-quality CRF and the highest position the
highest-quality one. VMAF is assumed to be non-decreasing with position,
which lets each step interpolate linearly between the current bounds.

Algorithm:
1. Build a scene sample of the source (short sources are used as-is)
2. Score crf_initial; done if within tolerance
3. Narrow the range to the side of crf_initial the target lies on
4. Score both ends of the range, reusing the initial measurement
5. Stop early if the target lies outside the range
6. Interpolate between the bounds until within tolerance, the next position
   repeats, or the iteration bound is hit
"""

from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from ....utils.logging import create_progress_bar, get_logger
from ....utils.math_utils import round_half_up
from ...errors import OutOfRange, SearchStagnation
from ...models import (EncodeConfig, ScoreSample, SearchOutcome, SearchRequest, SearchResult,
                       SearchState)
from ..analysis.quality_scorer import DEFAULT_VMAF_SPEED, QualityScorer
from ..processing.sampler import scene_sample
from ..toolkit import FFmpegToolkit, MediaToolkit

logger = get_logger("crf_search")


def within_tolerance(score: float, target: float, tolerance: float) -> bool:
    return abs(score - target) < tolerance


def next_position(state: SearchState, target: float) -> Optional[int]:
    """Interpolated position to probe next, or None when the search cannot progress.

    None is returned when the bounds crossed, the target is not bracketed by
    the bound scores, the bound scores are equal, or the interpolated
    position was already probed.
    """
    if state.low > state.high:
        return None
    low_score = state.scores[state.low]
    high_score = state.scores[state.high]
    if not low_score <= target <= high_score:
        return None
    if high_score == low_score:
        return None

    pos = state.low + round_half_up(
        (target - low_score) * (state.high - state.low) / (high_score - low_score)
    )
    if pos == state.last_position or pos in state.scores:
        return None
    return pos


def record_score(state: SearchState, position: int, score: float, target: float) -> SearchState:
    """New state after probing ``position``: the bound on the target's far side moves there."""
    scores = dict(state.scores)
    scores[position] = score
    if score > target:
        return replace(state, high=position, scores=scores, last_position=position)
    return replace(state, low=position, scores=scores, last_position=position)


class CrfSearch:
    """Interpolation search for the CRF that hits a target VMAF on a source."""

    def __init__(self, source: Path, toolkit: MediaToolkit, target_vmaf: float = 95.0,
                 tolerance: float = 0.5, crf_initial: int = 20, crf_min: int = 30,
                 crf_max: int = 15, base_config: Optional[EncodeConfig] = None,
                 max_iterations: Optional[int] = None, require_match: bool = False,
                 scorer: Optional[QualityScorer] = None, vmaf_speed: int = DEFAULT_VMAF_SPEED):
        if not crf_max <= crf_initial <= crf_min:
            raise ValueError(f"crf range must satisfy max <= initial <= min, got "
                             f"max: {crf_max}, initial: {crf_initial}, min: {crf_min}")
        if tolerance <= 0:
            raise ValueError(f"tolerance must be positive, got {tolerance}")
        if max_iterations is not None and max_iterations < 1:
            raise ValueError(f"max iterations must be at least 1, got {max_iterations}")

        self.source = Path(source)
        self.toolkit = toolkit
        self.target_vmaf = target_vmaf
        self.tolerance = tolerance
        self.crf_initial = crf_initial
        self.crf_min = crf_min
        self.crf_max = crf_max
        self.base_config = base_config or EncodeConfig()
        self.max_iterations = max_iterations
        self.require_match = require_match
        self.scorer = scorer or QualityScorer(toolkit, vmaf_speed)
        self.samples: List[ScoreSample] = []

    @classmethod
    def from_request(cls, request: SearchRequest, toolkit: MediaToolkit,
                     scorer: Optional[QualityScorer] = None) -> "CrfSearch":
        return cls(
            request.source, toolkit,
            target_vmaf=request.target_vmaf,
            tolerance=request.tolerance,
            crf_initial=request.crf_initial,
            crf_min=request.crf_min,
            crf_max=request.crf_max,
            base_config=request.base_config,
            max_iterations=request.max_iterations,
            require_match=request.require_match,
            scorer=scorer,
            vmaf_speed=request.vmaf_speed,
        )

    def run(self) -> SearchResult:
        """Run the search on a sample of the source."""
        self.samples = []
        logger.search(f"Searching crf {self.crf_max}..{self.crf_min} for vmaf "
                      f"{self.target_vmaf} +/- {self.tolerance} on {self.source.name}")
        with scene_sample(self.source, self.toolkit) as sample:
            return self._search(sample)

    def _score(self, sample: Path, crf: int, bar) -> float:
        result = self.scorer.score(sample, self.base_config.with_crf(crf))
        self.samples.append(ScoreSample(crf=crf, vmaf=result.vmaf))
        bar.update(1)
        bar.set_postfix(crf=crf, vmaf=f"{result.vmaf:.2f}")
        logger.search(f"crf: {crf}, vmaf: {result.vmaf:.2f}")
        return result.vmaf

    def _search(self, sample: Path) -> SearchResult:
        target = self.target_vmaf
        crf_min, crf_max = self.crf_min, self.crf_max

        with create_progress_bar(desc="CRF search", unit="encode", leave=False) as bar:
            initial = self._score(sample, self.crf_initial, bar)
            if within_tolerance(initial, target, self.tolerance):
                return self._finish(self.crf_initial, initial, SearchOutcome.FOUND)

            if initial > target:
                crf_max = self.crf_initial
            else:
                crf_min = self.crf_initial

            high = crf_min - crf_max
            scores = {}
            for pos in (0, high):
                crf = crf_min - pos
                if pos in scores:
                    continue
                scores[pos] = initial if crf == self.crf_initial else self._score(sample, crf, bar)
                if within_tolerance(scores[pos], target, self.tolerance):
                    return self._finish(crf, scores[pos], SearchOutcome.FOUND)

            if scores[high] < target:
                logger.search(f"vmaf {target} is above the best score in range, using crf {crf_max}")
                return self._finish(crf_max, scores[high], SearchOutcome.OUT_OF_RANGE)
            if scores[0] > target:
                logger.search(f"vmaf {target} is below the worst score in range, using crf {crf_min}")
                return self._finish(crf_min, scores[0], SearchOutcome.OUT_OF_RANGE)

            state = SearchState(low=0, high=high, scores=scores)
            limit = self.max_iterations or high + 1
            last_crf, last_score = self.samples[-1].crf, self.samples[-1].vmaf

            for _ in range(limit):
                pos = next_position(state, target)
                if pos is None:
                    logger.search(f"interpolation stagnated, using last crf {last_crf}")
                    return self._finish(last_crf, last_score, SearchOutcome.STAGNATED)

                last_crf = crf_min - pos
                last_score = self._score(sample, last_crf, bar)
                if within_tolerance(last_score, target, self.tolerance):
                    return self._finish(last_crf, last_score, SearchOutcome.FOUND)
                state = record_score(state, pos, last_score, target)

            logger.warn(f"crf search hit the iteration limit ({limit}), using last crf {last_crf}")
            return self._finish(last_crf, last_score, SearchOutcome.ITERATION_LIMIT)

    def _finish(self, crf: int, vmaf: float, outcome: SearchOutcome) -> SearchResult:
        if outcome is not SearchOutcome.FOUND and self.require_match:
            message = (f"no crf within {self.tolerance} of vmaf {self.target_vmaf}, "
                       f"closest crf {crf} scored {vmaf:.2f} ({outcome.value})")
            if outcome is SearchOutcome.OUT_OF_RANGE:
                raise OutOfRange(message, crf=crf)
            raise SearchStagnation(message, crf=crf)

        logger.result(f"crf: {crf}, vmaf: {vmaf:.2f}, outcome: {outcome.value}, "
                      f"encodes: {len(self.samples)}")
        return SearchResult(crf=crf, vmaf=vmaf, outcome=outcome, samples=tuple(self.samples))


def run_search(request: SearchRequest, toolkit: Optional[MediaToolkit] = None) -> SearchResult:
    """Search the CRF for ``request`` with the ffmpeg toolkit unless one is given."""
    return CrfSearch.from_request(request, toolkit or FFmpegToolkit()).run()
