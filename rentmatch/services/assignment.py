"""Capacity-respecting selection of scored requester/listing pairs.

Three strategies share one contract: only pairs clearing the admission
threshold are eligible, each side is used at most its capacity, at most
``max_results`` pairs are committed, and equal scores are ordered by the
requester index and then the listing's position in the eligible set.

- ``select_top_k``: single requester; sort-and-take is exact.
- ``solve_greedy``: many requesters; heuristic, commits best pairs first.
- ``build_model`` / ``solve_model``: many requesters; exact CP-SAT program,
  solved for total score first and then for the earliest tied pairs.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ortools.sat.python import cp_model

from rentmatch.domain.models import ScoredCandidate
from rentmatch.utils.logger import get_logger


logger = get_logger(__name__)


ALGORITHM_TOP_K = "top_k"
ALGORITHM_GREEDY = "greedy_matching"
ALGORITHM_CP_SAT = "cp_sat_matching"
ALGORITHM_REVERSE = "reverse_match"


class SolverModelError(RuntimeError):
    """Raised when CP-SAT reports the model itself as invalid or infeasible."""


class Deadline:
    """Wall-clock budget for one run, measured on the monotonic clock."""

    def __init__(self, expires_at: float) -> None:
        self._expires_at = expires_at

    @classmethod
    def after_ms(cls, budget_ms: float, *, started_at: Optional[float] = None) -> "Deadline":
        start = time.monotonic() if started_at is None else started_at
        return cls(start + budget_ms / 1000.0)

    def remaining_seconds(self) -> float:
        return self._expires_at - time.monotonic()

    def expired(self) -> bool:
        return self.remaining_seconds() <= 0.0


@dataclass(frozen=True)
class AssignmentPair:
    requester_index: int
    candidate_index: int
    score: float


@dataclass(frozen=True)
class AssignmentOutcome:
    pairs: list[AssignmentPair]
    algorithm: str
    timed_out: bool
    proven_optimal: bool


@dataclass(frozen=True)
class BuildArtifacts:
    model: Any
    variables: dict[tuple[int, int], Any]
    objective_coefficients: dict[tuple[int, int], int]
    tie_coefficients: dict[tuple[int, int], int]
    limit: int


def _ranking_key(pair: AssignmentPair) -> tuple[float, int, int]:
    return (-pair.score, pair.requester_index, pair.candidate_index)


def select_top_k(
    scored: Sequence[ScoredCandidate],
    *,
    max_results: int,
    min_score: float,
    deadline: Deadline,
) -> tuple[list[ScoredCandidate], bool]:
    """Return the best ``max_results`` candidates clearing ``min_score``.

    The second element is True when the deadline cut the selection short.
    """
    ranked = sorted(scored, key=lambda item: (-item.composite, item.position))
    selected: list[ScoredCandidate] = []
    for item in ranked:
        if len(selected) >= max_results:
            break
        if deadline.expired():
            return selected, True
        if item.composite < min_score:
            break
        selected.append(item)
    return selected, False


def admissible_pairs(
    pairs: Sequence[AssignmentPair],
    *,
    min_score: float,
) -> list[AssignmentPair]:
    return [pair for pair in pairs if pair.score >= min_score]


def solve_greedy(
    pairs: Sequence[AssignmentPair],
    *,
    max_results: int,
    deadline: Deadline,
    requester_capacity: int = 1,
    candidate_capacity: int = 1,
) -> AssignmentOutcome:
    """Commit pairs in descending score order while both sides have room."""
    requester_load: dict[int, int] = {}
    candidate_load: dict[int, int] = {}
    committed: list[AssignmentPair] = []
    timed_out = False

    for pair in sorted(pairs, key=_ranking_key):
        if len(committed) >= max_results:
            break
        if deadline.expired():
            timed_out = True
            break
        if requester_load.get(pair.requester_index, 0) >= requester_capacity:
            continue
        if candidate_load.get(pair.candidate_index, 0) >= candidate_capacity:
            continue
        committed.append(pair)
        requester_load[pair.requester_index] = requester_load.get(pair.requester_index, 0) + 1
        candidate_load[pair.candidate_index] = candidate_load.get(pair.candidate_index, 0) + 1

    return AssignmentOutcome(
        pairs=committed,
        algorithm=ALGORITHM_GREEDY,
        timed_out=timed_out,
        proven_optimal=False,
    )


def effective_limit(
    pairs: Sequence[AssignmentPair],
    *,
    max_results: int,
    requester_capacity: int = 1,
    candidate_capacity: int = 1,
) -> int:
    """Most pairs any assignment can commit: ``max_results`` capped by both sides."""
    requesters = {pair.requester_index for pair in pairs}
    candidates = {pair.candidate_index for pair in pairs}
    return min(
        max_results,
        len(pairs),
        len(requesters) * requester_capacity,
        len(candidates) * candidate_capacity,
    )


def build_model(
    *,
    pairs: Sequence[AssignmentPair],
    max_results: int,
    objective_scale: int,
    requester_capacity: int = 1,
    candidate_capacity: int = 1,
) -> BuildArtifacts:
    """Build the CP-SAT program maximizing total scaled score under capacities.

    Coefficients are the scaled scores alone. Ties are settled afterwards by
    ``solve_model`` with ``tie_coefficients``, which never exceed the pair count.
    """
    model = cp_model.CpModel()
    variables: dict[tuple[int, int], Any] = {}
    objective_coefficients: dict[tuple[int, int], int] = {}
    tie_coefficients: dict[tuple[int, int], int] = {}

    ordered = sorted(pairs, key=lambda pair: (pair.requester_index, pair.candidate_index))
    pair_count = len(ordered)
    limit = effective_limit(
        ordered,
        max_results=max_results,
        requester_capacity=requester_capacity,
        candidate_capacity=candidate_capacity,
    )

    for rank, pair in enumerate(ordered):
        key = (pair.requester_index, pair.candidate_index)
        variables[key] = model.new_bool_var(
            f"x_req_{pair.requester_index}_cand_{pair.candidate_index}"
        )
        objective_coefficients[key] = max(0, int(round(pair.score * objective_scale)))
        tie_coefficients[key] = pair_count - rank

    requester_vars: dict[int, list[Any]] = {}
    candidate_vars: dict[int, list[Any]] = {}
    for (requester_index, candidate_index), var in variables.items():
        requester_vars.setdefault(requester_index, []).append(var)
        candidate_vars.setdefault(candidate_index, []).append(var)

    for group in requester_vars.values():
        model.add(sum(group) <= requester_capacity)
    for group in candidate_vars.values():
        model.add(sum(group) <= candidate_capacity)

    if variables:
        model.add(sum(variables.values()) <= limit)
        model.maximize(
            sum(objective_coefficients[key] * var for key, var in variables.items())
        )

    return BuildArtifacts(
        model=model,
        variables=variables,
        objective_coefficients=objective_coefficients,
        tie_coefficients=tie_coefficients,
        limit=limit,
    )


def _new_solver(*, max_time_seconds: float, workers: int, random_seed: int) -> Any:
    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(max_time_seconds)
    solver.parameters.num_workers = workers
    solver.parameters.random_seed = random_seed
    return solver


def _prefer_earlier_pairs(
    *,
    artifacts: BuildArtifacts,
    values: dict[tuple[int, int], int],
    deadline: Deadline,
    workers: int,
    random_seed: int,
) -> dict[tuple[int, int], int]:
    """Among assignments with the optimal score, pick the earliest pairs.

    Falls back to ``values`` when the budget runs out before the second pass
    proves anything.
    """
    remaining = deadline.remaining_seconds()
    if remaining <= 0.0:
        return values

    model = artifacts.model
    best = sum(artifacts.objective_coefficients[key] * value for key, value in values.items())
    model.add(
        sum(artifacts.objective_coefficients[key] * var for key, var in artifacts.variables.items())
        >= best
    )
    for key, var in artifacts.variables.items():
        model.add_hint(var, values[key])
    model.maximize(
        sum(artifacts.tie_coefficients[key] * var for key, var in artifacts.variables.items())
    )

    solver = _new_solver(max_time_seconds=remaining, workers=workers, random_seed=random_seed)
    status = solver.solve(model)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        logger.debug("CP-SAT tie pass kept first solution | status=%s", solver.status_name(status))
        return values
    return {key: solver.value(var) for key, var in artifacts.variables.items()}


def solve_model(
    *,
    artifacts: BuildArtifacts,
    pairs: Sequence[AssignmentPair],
    deadline: Deadline,
    workers: int,
    random_seed: int,
) -> AssignmentOutcome:
    """Solve the CP-SAT program within the remaining run budget.

    The artifacts are consumed: the tie pass adds a constraint and replaces
    the objective. Raises ``SolverModelError`` when CP-SAT rejects the model.
    """
    if not artifacts.variables:
        return AssignmentOutcome(
            pairs=[],
            algorithm=ALGORITHM_CP_SAT,
            timed_out=False,
            proven_optimal=True,
        )

    remaining = deadline.remaining_seconds()
    if remaining <= 0.0:
        logger.warning("CP-SAT solve skipped | reason=deadline_exhausted")
        return AssignmentOutcome(
            pairs=[],
            algorithm=ALGORITHM_CP_SAT,
            timed_out=True,
            proven_optimal=False,
        )

    solver = _new_solver(max_time_seconds=remaining, workers=workers, random_seed=random_seed)
    status = solver.solve(artifacts.model)
    status_name = solver.status_name(status)
    if status in (cp_model.MODEL_INVALID, cp_model.INFEASIBLE):
        raise SolverModelError(status_name)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        logger.warning("CP-SAT solve returned no assignment | status=%s", status_name)
        return AssignmentOutcome(
            pairs=[],
            algorithm=ALGORITHM_CP_SAT,
            timed_out=True,
            proven_optimal=False,
        )

    wall_time = solver.wall_time
    values = {key: solver.value(var) for key, var in artifacts.variables.items()}
    proven_optimal = status == cp_model.OPTIMAL
    if proven_optimal:
        values = _prefer_earlier_pairs(
            artifacts=artifacts,
            values=values,
            deadline=deadline,
            workers=workers,
            random_seed=random_seed,
        )

    pair_lookup = {(pair.requester_index, pair.candidate_index): pair for pair in pairs}
    committed = [pair_lookup[key] for key, value in values.items() if value == 1]
    committed.sort(key=_ranking_key)

    logger.info(
        "CP-SAT solve completed | status=%s | committed=%s | limit=%s | wall_time=%.4f",
        status_name,
        len(committed),
        artifacts.limit,
        wall_time,
    )
    return AssignmentOutcome(
        pairs=committed,
        algorithm=ALGORITHM_CP_SAT,
        timed_out=not proven_optimal,
        proven_optimal=proven_optimal,
    )


def solve_exact(
    pairs: Sequence[AssignmentPair],
    *,
    max_results: int,
    deadline: Deadline,
    objective_scale: int,
    workers: int,
    random_seed: int,
    requester_capacity: int = 1,
    candidate_capacity: int = 1,
) -> AssignmentOutcome:
    """CP-SAT assignment, degrading to ``solve_greedy`` if the model is rejected."""
    artifacts = build_model(
        pairs=pairs,
        max_results=max_results,
        objective_scale=objective_scale,
        requester_capacity=requester_capacity,
        candidate_capacity=candidate_capacity,
    )
    try:
        return solve_model(
            artifacts=artifacts,
            pairs=pairs,
            deadline=deadline,
            workers=workers,
            random_seed=random_seed,
        )
    except SolverModelError as exc:
        logger.warning("CP-SAT model rejected; using greedy matching | status=%s", exc)
        return solve_greedy(
            pairs,
            max_results=max_results,
            deadline=deadline,
            requester_capacity=requester_capacity,
            candidate_capacity=candidate_capacity,
        )
