"""Preference matching orchestration: validate, filter, score, assign, explain."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

from rentmatch.domain.constraints import (
    EngineConfig,
    InvalidWeightsError,
    PreferenceValidationError,
    resolve_weights,
    validate_engine_config,
    validate_preference,
)
from rentmatch.domain.models import (
    CRITERIA,
    BatchOptimizationResult,
    Candidate,
    Match,
    OptimizationResult,
    PreferenceSpec,
    RequesterMatch,
    ReverseOptimizationResult,
    RunOutcome,
    RunStatus,
    ScoredCandidate,
    SubScores,
    WeightVector,
)
from rentmatch.domain.ports import DataSourceUnavailableError, MatchStore, RequesterQuery
from rentmatch.repository.data_repository import DataRepository
from rentmatch.services.assignment import (
    ALGORITHM_CP_SAT,
    ALGORITHM_GREEDY,
    ALGORITHM_REVERSE,
    ALGORITHM_TOP_K,
    AssignmentOutcome,
    AssignmentPair,
    Deadline,
    admissible_pairs,
    select_top_k,
    solve_exact,
    solve_greedy,
)
from rentmatch.services.eligibility import filter_eligible
from rentmatch.services.explanation import CURRENCY_SYMBOL, generate_explanation
from rentmatch.services.scoring import score_candidate, score_candidates
from rentmatch.services.telemetry_service import TelemetryStore, traced_memory_bytes
from rentmatch.utils.config import Settings, get_settings
from rentmatch.utils.logger import get_logger


logger = get_logger(__name__)


SATISFIED_CRITERION_SCORE = 70.0


class UnknownTenantError(LookupError):
    """Raised when a stored tenant preference cannot be found."""


class UnknownListingError(LookupError):
    """Raised when a stored listing cannot be found."""


@dataclass
class _RunMetrics:
    """Counters filled in as a run progresses; read by the telemetry step."""

    algorithm: str
    constraints_count: int = 0
    candidates_evaluated: int = 0
    matches_found: int = 0
    objective_value: float = 0.0
    timed_out: bool = False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _validate_max_results(max_results: int) -> int:
    if max_results < 1:
        raise PreferenceValidationError("max_results must be >= 1")
    return int(max_results)


def satisfied_criteria(details: Sequence[SubScores]) -> list[str]:
    """Criteria whose average sub-score across the matches reaches 70."""
    if not details:
        return []
    satisfied: list[str] = []
    for criterion in CRITERIA:
        values = [item.by_criterion()[criterion] for item in details]
        if sum(values) / len(values) >= SATISFIED_CRITERION_SCORE:
            satisfied.append(criterion)
    return satisfied


def objective_value(match_scores: Sequence[int]) -> float:
    """Mean rounded match score normalized to [0, 1]; 0 for an empty result."""
    if not match_scores:
        return 0.0
    return float(sum(match_scores) / len(match_scores) / 100.0)


def preferences_summary(preference: PreferenceSpec) -> str:
    return (
        f"Budget: {CURRENCY_SYMBOL}{preference.budget_min:.0f}-"
        f"{CURRENCY_SYMBOL}{preference.budget_max:.0f}, "
        f"Location: {preference.preferred_location}"
    )


def displayed_score(composite: float) -> int:
    """Whole-number score a caller sees; ranking ties are judged on this value."""
    return int(round(composite))


def build_match(
    scored: ScoredCandidate,
    preference: PreferenceSpec,
    computed_at: datetime,
) -> Match:
    match_score = displayed_score(scored.composite)
    return Match(
        listing_id=scored.candidate.listing_id,
        requester_id=preference.requester_id,
        match_score=match_score,
        details=scored.sub_scores.rounded(),
        explanation=tuple(generate_explanation(scored.candidate, preference, match_score)),
        computed_at=computed_at,
    )


class MatchingOptimizationService:
    """Business logic orchestration for tenant/listing matching runs.

    Every public operation records exactly one telemetry entry, whether it
    succeeds, times out or raises.
    """

    def __init__(
        self,
        repository: Optional[MatchStore] = None,
        settings: Optional[Settings] = None,
        telemetry: Optional[TelemetryStore] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository: MatchStore = repository or DataRepository(self._settings)
        self._config = EngineConfig(
            default_weights=self._settings.default_weights,
            min_match_threshold=self._settings.min_match_threshold,
            max_execution_time_ms=self._settings.max_execution_time_ms,
            max_candidates_per_run=self._settings.max_candidates_per_run,
            batch_strategy=self._settings.batch_strategy,
            objective_scale=self._settings.solver_objective_scale,
            solver_workers=self._settings.solver_workers,
            solver_random_seed=self._settings.solver_random_seed,
        )
        validate_engine_config(self._config)
        self._telemetry = telemetry or TelemetryStore(
            self._settings.telemetry_capacity,
            efficiency_window=self._settings.telemetry_efficiency_window,
            latency_ceiling_ms=float(self._settings.max_execution_time_ms),
        )

    @property
    def telemetry(self) -> TelemetryStore:
        return self._telemetry

    @property
    def config(self) -> EngineConfig:
        return self._config

    def _record(
        self,
        metrics: _RunMetrics,
        *,
        started_at: float,
        memory_before: int,
        error: Optional[BaseException] = None,
    ) -> None:
        if error is not None:
            outcome = RunOutcome.FAILURE
        elif metrics.timed_out:
            outcome = RunOutcome.TIMEOUT
        else:
            outcome = RunOutcome.SUCCESS
        self._telemetry.record_run(
            algorithm=metrics.algorithm,
            execution_time_ms=(time.monotonic() - started_at) * 1000.0,
            outcome=outcome,
            memory_delta_bytes=max(0, traced_memory_bytes() - memory_before),
            constraints_count=metrics.constraints_count,
            candidates_evaluated=metrics.candidates_evaluated,
            matches_found=metrics.matches_found,
            objective_value=metrics.objective_value,
            error=str(error) if error is not None else None,
        )

    def optimize(
        self,
        preference: PreferenceSpec,
        weight_overrides: Optional[Mapping[str, Optional[float]]] = None,
        max_results: Optional[int] = None,
        *,
        persist_outputs: bool = False,
    ) -> OptimizationResult:
        """Rank the listings best satisfying one requester's preferences."""
        started_at = time.monotonic()
        memory_before = traced_memory_bytes()
        deadline = Deadline.after_ms(self._config.max_execution_time_ms, started_at=started_at)
        metrics = _RunMetrics(algorithm=ALGORITHM_TOP_K)

        try:
            weights = resolve_weights(self._config.default_weights, weight_overrides)
            validate_preference(preference)
            limit = _validate_max_results(
                max_results if max_results is not None else self._settings.default_max_results
            )
            metrics.constraints_count = preference.constraint_count

            candidates = filter_eligible(
                self._repository,
                preference,
                self._config.max_candidates_per_run,
            )
            metrics.candidates_evaluated = len(candidates)

            scored = score_candidates(candidates, preference, weights)
            selected, timed_out = select_top_k(
                scored,
                max_results=limit,
                min_score=self._config.min_match_threshold,
                deadline=deadline,
            )
            computed_at = _utc_now()
            ordered = sorted(
                selected,
                key=lambda item: (-displayed_score(item.composite), item.position),
            )
            matches = [build_match(item, preference, computed_at) for item in ordered]

            metrics.matches_found = len(matches)
            metrics.objective_value = objective_value([match.match_score for match in matches])
            metrics.timed_out = timed_out

            if persist_outputs:
                self._persist_matches(matches, algorithm=ALGORITHM_TOP_K)

            result = OptimizationResult(
                matches=matches,
                algorithm=ALGORITHM_TOP_K,
                execution_time_ms=(time.monotonic() - started_at) * 1000.0,
                constraints_satisfied=satisfied_criteria([match.details for match in matches]),
                objective_value=metrics.objective_value,
                candidates_evaluated=len(candidates),
                weights=weights,
                preference=preference,
                status=RunStatus.TIMEOUT if timed_out else RunStatus.COMPLETED,
            )
        except (InvalidWeightsError, PreferenceValidationError) as exc:
            logger.warning("Optimization rejected | reason=%s", exc)
            self._record(metrics, started_at=started_at, memory_before=memory_before, error=exc)
            raise
        except DataSourceUnavailableError as exc:
            logger.error("Optimization data source failure | reason=%s", exc)
            self._record(metrics, started_at=started_at, memory_before=memory_before, error=exc)
            raise
        except Exception as exc:
            self._record(metrics, started_at=started_at, memory_before=memory_before, error=exc)
            raise

        self._record(metrics, started_at=started_at, memory_before=memory_before)
        logger.info(
            (
                "Optimization completed | algorithm=%s | status=%s | candidates=%s | "
                "matches=%s | objective_value=%.4f | execution_time_ms=%.3f"
            ),
            result.algorithm,
            result.status.value,
            result.candidates_evaluated,
            result.matches_found,
            result.objective_value,
            result.execution_time_ms,
        )
        return result

    def optimize_for_tenant(
        self,
        tenant_id: str,
        weight_overrides: Optional[Mapping[str, Optional[float]]] = None,
        max_results: Optional[int] = None,
        *,
        persist_outputs: bool = True,
    ) -> OptimizationResult:
        preference = self._repository.get_tenant_preference(tenant_id)
        if preference is None:
            raise UnknownTenantError(f"Tenant preferences not found: {tenant_id}")
        return self.optimize(
            preference,
            weight_overrides=weight_overrides,
            max_results=max_results,
            persist_outputs=persist_outputs,
        )

    def optimize_reverse(
        self,
        candidate: Candidate,
        max_results: Optional[int] = None,
    ) -> ReverseOptimizationResult:
        """Rank stored requesters by how well ``candidate`` suits them."""
        started_at = time.monotonic()
        memory_before = traced_memory_bytes()
        deadline = Deadline.after_ms(self._config.max_execution_time_ms, started_at=started_at)
        metrics = _RunMetrics(algorithm=ALGORITHM_REVERSE)

        try:
            limit = _validate_max_results(
                max_results
                if max_results is not None
                else self._settings.reverse_default_max_results
            )
            weights = resolve_weights(self._config.default_weights)
            requesters = self._repository.find_requesters(RequesterQuery())
            metrics.candidates_evaluated = len(requesters)

            scored = [
                score_candidate(candidate, preference, weights) for preference in requesters
            ]
            pairs = [
                AssignmentPair(requester_index=index, candidate_index=0, score=item.composite)
                for index, item in enumerate(scored)
            ]
            outcome = solve_greedy(
                admissible_pairs(pairs, min_score=self._config.min_match_threshold),
                max_results=limit,
                deadline=deadline,
                candidate_capacity=limit,
            )

            matches: list[RequesterMatch] = []
            ordered_pairs = sorted(
                outcome.pairs,
                key=lambda pair: (-displayed_score(pair.score), pair.requester_index),
            )
            for pair in ordered_pairs:
                preference = requesters[pair.requester_index]
                item = scored[pair.requester_index]
                matches.append(
                    RequesterMatch(
                        requester_id=str(preference.requester_id),
                        match_score=displayed_score(item.composite),
                        details=item.sub_scores.rounded(),
                        preferences_summary=preferences_summary(preference),
                    )
                )

            metrics.matches_found = len(matches)
            metrics.objective_value = objective_value([match.match_score for match in matches])
            metrics.timed_out = outcome.timed_out

            result = ReverseOptimizationResult(
                listing_id=candidate.listing_id,
                matches=matches,
                algorithm=ALGORITHM_REVERSE,
                execution_time_ms=(time.monotonic() - started_at) * 1000.0,
                requesters_evaluated=len(requesters),
                objective_value=metrics.objective_value,
                status=RunStatus.TIMEOUT if outcome.timed_out else RunStatus.COMPLETED,
            )
        except DataSourceUnavailableError as exc:
            logger.error("Reverse match data source failure | reason=%s", exc)
            self._record(metrics, started_at=started_at, memory_before=memory_before, error=exc)
            raise
        except Exception as exc:
            self._record(metrics, started_at=started_at, memory_before=memory_before, error=exc)
            raise

        self._record(metrics, started_at=started_at, memory_before=memory_before)
        logger.info(
            "Reverse match completed | listing_id=%s | requesters=%s | matches=%s | status=%s",
            result.listing_id,
            result.requesters_evaluated,
            len(result.matches),
            result.status.value,
        )
        return result

    def optimize_reverse_for_listing(
        self,
        listing_id: str,
        max_results: Optional[int] = None,
    ) -> ReverseOptimizationResult:
        candidate = self._repository.get_listing(listing_id)
        if candidate is None:
            raise UnknownListingError(f"Listing not found: {listing_id}")
        return self.optimize_reverse(candidate, max_results=max_results)

    def _solve_batch(
        self,
        pairs: Sequence[AssignmentPair],
        *,
        max_results: int,
        deadline: Deadline,
    ) -> AssignmentOutcome:
        if self._config.batch_strategy == "greedy":
            return solve_greedy(pairs, max_results=max_results, deadline=deadline)
        return solve_exact(
            pairs,
            max_results=max_results,
            deadline=deadline,
            objective_scale=self._config.objective_scale,
            workers=self._config.solver_workers,
            random_seed=self._config.solver_random_seed,
        )

    def optimize_batch(
        self,
        max_results: Optional[int] = None,
        *,
        persist_outputs: bool = False,
    ) -> BatchOptimizationResult:
        """Assign every stored requester at most one listing, maximizing total score.

        Listings are shared across requesters, so each is committed at most
        once. With ``max_results`` omitted every requester may be matched.
        """
        started_at = time.monotonic()
        memory_before = traced_memory_bytes()
        deadline = Deadline.after_ms(self._config.max_execution_time_ms, started_at=started_at)
        algorithm = ALGORITHM_GREEDY if self._config.batch_strategy == "greedy" else ALGORITHM_CP_SAT
        metrics = _RunMetrics(algorithm=algorithm)

        try:
            weights: WeightVector = resolve_weights(self._config.default_weights)
            requesters = self._repository.find_requesters(RequesterQuery())
            limit = _validate_max_results(
                max_results if max_results is not None else max(1, len(requesters))
            )

            candidates: list[Candidate] = []
            candidate_index_by_id: dict[str, int] = {}
            pairs: list[AssignmentPair] = []
            scored_by_pair: dict[tuple[int, int], ScoredCandidate] = {}
            for requester_index, preference in enumerate(requesters):
                metrics.constraints_count += preference.constraint_count
                eligible = filter_eligible(
                    self._repository,
                    preference,
                    self._config.max_candidates_per_run,
                )
                for candidate in eligible:
                    if candidate.listing_id not in candidate_index_by_id:
                        candidate_index_by_id[candidate.listing_id] = len(candidates)
                        candidates.append(candidate)
                    candidate_index = candidate_index_by_id[candidate.listing_id]
                    scored = score_candidate(candidate, preference, weights, position=candidate_index)
                    scored_by_pair[(requester_index, candidate_index)] = scored
                    pairs.append(
                        AssignmentPair(
                            requester_index=requester_index,
                            candidate_index=candidate_index,
                            score=scored.composite,
                        )
                    )
            metrics.candidates_evaluated = len(candidates)

            outcome = self._solve_batch(
                admissible_pairs(pairs, min_score=self._config.min_match_threshold),
                max_results=limit,
                deadline=deadline,
            )
            metrics.algorithm = outcome.algorithm

            computed_at = _utc_now()
            ordered_pairs = sorted(
                outcome.pairs,
                key=lambda pair: (
                    -displayed_score(pair.score),
                    pair.requester_index,
                    pair.candidate_index,
                ),
            )
            matches = [
                build_match(
                    scored_by_pair[(pair.requester_index, pair.candidate_index)],
                    requesters[pair.requester_index],
                    computed_at,
                )
                for pair in ordered_pairs
            ]
            matched_requesters = {pair.requester_index for pair in outcome.pairs}
            unmatched = [
                str(preference.requester_id)
                for index, preference in enumerate(requesters)
                if index not in matched_requesters
            ]

            metrics.matches_found = len(matches)
            metrics.objective_value = objective_value([match.match_score for match in matches])
            metrics.timed_out = outcome.timed_out

            if persist_outputs:
                self._persist_matches(matches, algorithm=outcome.algorithm)

            result = BatchOptimizationResult(
                matches=matches,
                algorithm=outcome.algorithm,
                execution_time_ms=(time.monotonic() - started_at) * 1000.0,
                objective_value=metrics.objective_value,
                requesters_evaluated=len(requesters),
                candidates_evaluated=len(candidates),
                unmatched_requester_ids=unmatched,
                status=RunStatus.TIMEOUT if outcome.timed_out else RunStatus.COMPLETED,
                proven_optimal=outcome.proven_optimal,
            )
        except DataSourceUnavailableError as exc:
            logger.error("Batch match data source failure | reason=%s", exc)
            self._record(metrics, started_at=started_at, memory_before=memory_before, error=exc)
            raise
        except Exception as exc:
            self._record(metrics, started_at=started_at, memory_before=memory_before, error=exc)
            raise

        self._record(metrics, started_at=started_at, memory_before=memory_before)
        logger.info(
            (
                "Batch match completed | algorithm=%s | status=%s | requesters=%s | "
                "candidates=%s | matches=%s | objective_value=%.4f | proven_optimal=%s"
            ),
            result.algorithm,
            result.status.value,
            result.requesters_evaluated,
            result.candidates_evaluated,
            len(result.matches),
            result.objective_value,
            result.proven_optimal,
        )
        return result

    def _persist_matches(self, matches: Sequence[Match], *, algorithm: str) -> None:
        self._repository.save_match_logs(
            [(match.requester_id, match.listing_id, match.match_score) for match in matches],
            algorithm=algorithm,
        )
        by_requester: dict[str, list[str]] = {}
        for match in matches:
            if match.requester_id is not None:
                by_requester.setdefault(match.requester_id, []).append(match.listing_id)
        for requester_id, listing_ids in by_requester.items():
            self._repository.add_search_history(requester_id, listing_ids)
