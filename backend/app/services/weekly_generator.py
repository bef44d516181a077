from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
import logging
import math
from time import perf_counter
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ResourceNotFoundError, TimetableConflictError, ValidationError
from app.models.room import Room
from app.models.school import Section
from app.models.timetable import SectionSubjectRequirement, TimetableEntry
from app.models.timetable_generation import RunStatus, TimetableRun
from app.services import catalog
from app.services.availability import AvailabilityIndex, IndexPolicy, WindowKind
from app.services.conflict_checker import PlacementCandidate
from app.services.generation_lock import generation_lock
from app.services.placement_writer import PlacementWriter
from app.services.slot_suggester import first_free_slot
from app.services.time_grid import TimeGrid, parse_time

logger = logging.getLogger(__name__)

INFERRED_DURATION_MINUTES = 60
DEFAULT_WEEKLY_HOURS = 2


@dataclass(frozen=True)
class GenerationOptions:
    """Knobs for one generation run.

    target_section_ids: sections to fill; ``None`` or an empty tuple means
        every section.
    include_pinned: treat pinned slots of those sections as occupied.
    honor_unavailability: treat staff and room unavailability as hard.
    preferred_start_time / preferred_end_time: a window tried before the
        full school day.
    count_pinned: pinned slots count toward ``periods_per_week``.
    clear_existing: delete the sections' current entries first; by default
        generation only fills gaps.
    auto_infer_requirements: add requirements for subjects linked to a
        section's level that have no stored requirement.
    """

    target_section_ids: tuple[str, ...] | None = None
    include_pinned: bool = True
    honor_unavailability: bool = True
    preferred_start_time: str | None = None
    preferred_end_time: str | None = None
    count_pinned: bool = True
    clear_existing: bool = False
    auto_infer_requirements: bool = True


@dataclass(frozen=True)
class LessonRequirement:
    """A stored requirement, or one inferred from a level's subjects."""

    key: str
    requirement_id: int | None
    section_id: str
    subject_id: str
    periods_per_week: int
    duration_minutes: int
    min_gap_mins: int = 0
    allow_double: bool = False
    preferred_room_type: str | None = None

    @property
    def inferred(self) -> bool:
        return self.requirement_id is None

    @classmethod
    def from_model(cls, requirement: SectionSubjectRequirement) -> "LessonRequirement":
        return cls(
            key=f"requirement-{requirement.id}",
            requirement_id=requirement.id,
            section_id=requirement.section_id,
            subject_id=requirement.subject_id,
            periods_per_week=requirement.periods_per_week,
            duration_minutes=requirement.duration_minutes,
            min_gap_mins=requirement.min_gap_mins,
            allow_double=requirement.allow_double,
            preferred_room_type=requirement.preferred_room_type,
        )


@dataclass(frozen=True)
class LessonVariable:
    requirement_key: str
    occurrence: int
    section_id: str
    subject_id: str
    duration_minutes: int
    min_gap_mins: int
    allow_double: bool
    staff_ids: tuple[str, ...]
    room_ids: tuple[str | None, ...]
    combinations: int


@dataclass(frozen=True)
class Placement:
    variable: LessonVariable
    candidate: PlacementCandidate
    entry_id: str


@dataclass
class UnsatisfiedRequirement:
    requirement_id: int | None
    section_id: str
    subject_id: str
    periods_per_week: int
    missing: int
    inferred: bool = False


@dataclass
class GenerationResult:
    run_id: str
    placed_count: int
    placements: list[TimetableEntry]
    unsatisfied: list[UnsatisfiedRequirement]
    backtracks: int = 0


@dataclass
class SearchState:
    index: AvailabilityIndex
    placed: list[Placement] = field(default_factory=list)
    entries: dict[str, TimetableEntry] = field(default_factory=dict)
    backtracks: int = 0


class WeeklyGenerator:
    """Best-effort constraint search that fills a school's weekly timetable.

    Every missing lesson occurrence becomes a variable. Variables are placed
    most-constrained first; each one takes the earliest slot (by day spread,
    then time, then room) for the first eligible teacher that has one. A
    failure triggers one bounded backtracking pass before the variable is
    reported as unsatisfied. Nothing is random: the same stored state and
    options always give the same timetable.
    """

    def __init__(
        self,
        db: Session,
        school_id: str,
        options: GenerationOptions | None = None,
        *,
        backtrack_limit: int | None = None,
        lock_ttl_seconds: int | None = None,
    ) -> None:
        settings = get_settings()
        self.db = db
        self.school_id = school_id
        self.options = options or GenerationOptions()
        self.backtrack_limit = backtrack_limit if backtrack_limit is not None else settings.generation_backtrack_limit
        self.lock_ttl_seconds = lock_ttl_seconds if lock_ttl_seconds is not None else settings.generation_lock_ttl_seconds

    def run(self) -> GenerationResult:
        school = catalog.get_school(self.db, self.school_id)
        grid = catalog.school_time_grid(school)
        window = self._preferred_window(grid)
        sections = self._load_sections()
        section_ids = [section.id for section in sections]

        run_id = str(uuid.uuid4())
        with generation_lock(
            self.db,
            school_id=self.school_id,
            section_ids=section_ids,
            run_id=run_id,
            ttl_seconds=self.lock_ttl_seconds,
        ):
            run = TimetableRun(
                id=run_id,
                school_id=self.school_id,
                status=RunStatus.running,
                options=self._options_payload(),
                started_at=datetime.now(timezone.utc),
            )
            self.db.add(run)
            self.db.commit()
            logger.info("Generation %s started for %s section(s) in school %s", run_id, len(sections), self.school_id)

            started = perf_counter()
            try:
                result = self._generate(run_id, grid, window, sections)
            except Exception as exc:
                logger.exception("Generation %s failed", run_id)
                self.db.rollback()
                run = self.db.get(TimetableRun, run_id)
                run.status = RunStatus.failed
                run.error = str(exc)[:500]
                run.finished_at = datetime.now(timezone.utc)
                self.db.commit()
                raise

            run = self.db.get(TimetableRun, run_id)
            run.status = RunStatus.succeeded
            run.finished_at = datetime.now(timezone.utc)
            run.metrics = {
                "placed": result.placed_count,
                "unsatisfied": len(result.unsatisfied),
                "missing_periods": sum(item.missing for item in result.unsatisfied),
                "backtracks": result.backtracks,
                "elapsed_ms": round((perf_counter() - started) * 1000, 1),
            }
            self.db.commit()
        logger.info(
            "Generation %s placed %s lesson(s); %s requirement(s) unsatisfied",
            run_id,
            result.placed_count,
            len(result.unsatisfied),
        )
        return result

    def _options_payload(self) -> dict:
        payload = asdict(self.options)
        if payload["target_section_ids"] is not None:
            payload["target_section_ids"] = list(payload["target_section_ids"])
        return payload

    def _preferred_window(self, grid: TimeGrid) -> tuple[int, int] | None:
        start_raw = self.options.preferred_start_time
        end_raw = self.options.preferred_end_time
        if start_raw is None and end_raw is None:
            return None
        start = parse_time(start_raw) if start_raw is not None else grid.day_start
        end = parse_time(end_raw) if end_raw is not None else grid.day_end
        if end <= start:
            raise ValidationError(
                "Preferred end time must be after preferred start time",
                details={"preferred_start_time": start_raw, "preferred_end_time": end_raw},
            )
        return start, end

    def _load_sections(self) -> list[Section]:
        targets = self.options.target_section_ids
        if not targets:
            return catalog.list_sections(self.db, self.school_id)
        sections = catalog.list_sections(self.db, self.school_id, list(targets))
        found = {section.id for section in sections}
        for section_id in targets:
            if section_id not in found:
                raise ResourceNotFoundError("Section", section_id)
        return sections

    def _generate(
        self,
        run_id: str,
        grid: TimeGrid,
        window: tuple[int, int] | None,
        sections: list[Section],
    ) -> GenerationResult:
        section_ids = [section.id for section in sections]
        policy = IndexPolicy(
            include_pinned=self.options.include_pinned,
            honor_unavailability=self.options.honor_unavailability,
            pinned_section_ids=frozenset(section_ids),
        )
        writer = PlacementWriter(self.db, self.school_id, policy=policy)
        if self.options.clear_existing:
            writer.clear_sections(section_ids)

        state = SearchState(index=AvailabilityIndex.load(self.db, self.school_id, policy))
        requirements = self._load_requirements(section_ids)
        if self.options.auto_infer_requirements:
            requirements.extend(self._infer_requirements(sections, requirements))
        rooms = catalog.list_rooms(self.db, self.school_id)
        levels = {section.id: section.level_id for section in sections}

        needed: dict[str, int] = {}
        variables: list[LessonVariable] = []
        for requirement in requirements:
            missing = self._missing_occurrences(requirement, state.index)
            needed[requirement.key] = missing
            if missing == 0:
                continue
            try:
                grid.validate_duration(requirement.duration_minutes)
            except ValidationError:
                logger.warning(
                    "Requirement %s has duration %s off the %s-minute grid; skipping",
                    requirement.key,
                    requirement.duration_minutes,
                    grid.step,
                )
                continue
            variables.extend(self._expand(requirement, missing, levels[requirement.section_id], rooms, grid, window))

        # Stored requirements come first, so they win ties against inferred ones.
        order = {requirement.key: position for position, requirement in enumerate(requirements)}
        variables.sort(key=lambda var: (var.combinations, order[var.requirement_key], var.occurrence))

        for variable in variables:
            if self._place(variable, state, writer, run_id, grid, window) is not None:
                continue
            if self._backtrack(variable, state, writer, run_id, grid, window):
                continue
            logger.info(
                "Requirement %s occurrence %s could not be placed (section %s, subject %s)",
                variable.requirement_key,
                variable.occurrence,
                variable.section_id,
                variable.subject_id,
            )

        placed_per_requirement = Counter(placement.variable.requirement_key for placement in state.placed)
        unsatisfied = [
            UnsatisfiedRequirement(
                requirement_id=requirement.requirement_id,
                section_id=requirement.section_id,
                subject_id=requirement.subject_id,
                periods_per_week=requirement.periods_per_week,
                missing=needed[requirement.key] - placed_per_requirement[requirement.key],
                inferred=requirement.inferred,
            )
            for requirement in requirements
            if needed[requirement.key] > placed_per_requirement[requirement.key]
        ]
        placements = [state.entries[placement.entry_id] for placement in state.placed]
        return GenerationResult(
            run_id=run_id,
            placed_count=len(placements),
            placements=placements,
            unsatisfied=unsatisfied,
            backtracks=state.backtracks,
        )

    def _load_requirements(self, section_ids: list[str]) -> list[LessonRequirement]:
        if not section_ids:
            return []
        rows = self.db.execute(
            select(SectionSubjectRequirement)
            .where(
                SectionSubjectRequirement.school_id == self.school_id,
                SectionSubjectRequirement.section_id.in_(section_ids),
            )
            .order_by(SectionSubjectRequirement.id)
        ).scalars()
        return [LessonRequirement.from_model(row) for row in rows]

    def _infer_requirements(
        self,
        sections: list[Section],
        stored: list[LessonRequirement],
    ) -> list[LessonRequirement]:
        """Requirements for level subjects a section has no stored requirement for.

        Each inferred requirement uses hour-long lessons, one per weekly hour of
        the subject (two when the subject has no hours set, at least one).
        """
        covered = {(requirement.section_id, requirement.subject_id) for requirement in stored}
        by_level = catalog.level_subjects(
            self.db,
            self.school_id,
            {section.level_id for section in sections if section.level_id is not None},
        )
        inferred: list[LessonRequirement] = []
        for section in sections:
            for subject in by_level.get(section.level_id, []):
                if (section.id, subject.id) in covered:
                    continue
                hours = subject.weekly_hours if subject.weekly_hours is not None else DEFAULT_WEEKLY_HOURS
                periods = max(1, math.floor(hours * 60 / INFERRED_DURATION_MINUTES + 0.5))
                inferred.append(
                    LessonRequirement(
                        key=f"inferred-{section.id}-{subject.id}",
                        requirement_id=None,
                        section_id=section.id,
                        subject_id=subject.id,
                        periods_per_week=periods,
                        duration_minutes=INFERRED_DURATION_MINUTES,
                    )
                )
        if inferred:
            logger.info("Inferred %s requirement(s) from level subjects", len(inferred))
        return inferred

    def _missing_occurrences(self, requirement: LessonRequirement, index: AvailabilityIndex) -> int:
        kinds = [WindowKind.entry]
        if self.options.include_pinned and self.options.count_pinned:
            kinds.append(WindowKind.pinned)
        scheduled = index.pair_count(requirement.section_id, requirement.subject_id, kinds=kinds)
        return max(0, requirement.periods_per_week - scheduled)

    def _expand(
        self,
        requirement: LessonRequirement,
        missing: int,
        level_id: str | None,
        rooms: list[Room],
        grid: TimeGrid,
        window: tuple[int, int] | None,
    ) -> list[LessonVariable]:
        staff_ids = tuple(catalog.eligible_staff_ids(self.db, self.school_id, requirement.subject_id, level_id))
        room_ids = self._room_order(rooms, requirement.preferred_room_type)

        starts = 0
        if window is not None:
            starts = grid.start_count(requirement.duration_minutes, window_start=window[0], window_end=window[1])
        if starts == 0:
            starts = grid.start_count(requirement.duration_minutes)
        combinations = len(staff_ids) * len(room_ids) * len(grid.days) * starts

        return [
            LessonVariable(
                requirement_key=requirement.key,
                occurrence=occurrence,
                section_id=requirement.section_id,
                subject_id=requirement.subject_id,
                duration_minutes=requirement.duration_minutes,
                min_gap_mins=requirement.min_gap_mins,
                allow_double=requirement.allow_double,
                staff_ids=staff_ids,
                room_ids=room_ids,
                combinations=combinations,
            )
            for occurrence in range(missing)
        ]

    @staticmethod
    def _room_order(rooms: list[Room], preferred_type: str | None) -> tuple[str | None, ...]:
        if not rooms:
            return (None,)
        if not preferred_type:
            return tuple(room.id for room in rooms)
        matching = [room.id for room in rooms if room.room_type == preferred_type]
        others = [room.id for room in rooms if room.room_type != preferred_type]
        return tuple(matching + others)

    @staticmethod
    def _day_order(variable: LessonVariable, index: AvailabilityIndex, grid: TimeGrid) -> list[int]:
        # Spread a subject across the week: emptier days first, then Monday..Sunday.
        return sorted(
            grid.days,
            key=lambda day: (len(index.pair_windows(variable.section_id, variable.subject_id, day)), day),
        )

    @staticmethod
    def _spacing_ok(variable: LessonVariable, index: AvailabilityIndex, candidate: PlacementCandidate) -> bool:
        same_day = index.pair_windows(variable.section_id, variable.subject_id, candidate.day_of_week)
        touching = 0
        for window in same_day:
            if candidate.start >= window.end:
                gap = candidate.start - window.end
            else:
                gap = window.start - candidate.end
            if gap == 0:
                touching += 1
            elif gap < variable.min_gap_mins:
                return False
        if touching == 0:
            return True
        if not variable.allow_double:
            return False
        existing_doubles = sum(1 for left, right in zip(same_day, same_day[1:]) if left.end == right.start)
        return touching + existing_doubles <= 1

    def _search(
        self,
        variable: LessonVariable,
        index: AvailabilityIndex,
        grid: TimeGrid,
        window: tuple[int, int] | None,
    ) -> PlacementCandidate | None:
        windows: list[tuple[int | None, int | None]] = [(None, None)]
        if window is not None:
            windows.insert(0, window)
        days = self._day_order(variable, index, grid)
        if not variable.staff_ids:
            return None
        for window_start, window_end in windows:
            candidate = first_free_slot(
                index,
                grid,
                duration_minutes=variable.duration_minutes,
                days=days,
                section_id=variable.section_id,
                subject_id=variable.subject_id,
                staff_ids=variable.staff_ids,
                room_ids=variable.room_ids,
                window_start=window_start,
                window_end=window_end,
                accept=lambda option: self._spacing_ok(variable, index, option),
            )
            if candidate is not None:
                return candidate
        return None

    def _commit(
        self,
        variable: LessonVariable,
        candidate: PlacementCandidate,
        state: SearchState,
        writer: PlacementWriter,
        run_id: str,
    ) -> Placement | None:
        try:
            entry = writer.place(candidate, run_id=run_id, validate_references=False)
        except TimetableConflictError as exc:
            logger.warning(
                "Generation %s lost slot day %s at %s to a concurrent change: %s",
                run_id,
                candidate.day_of_week,
                candidate.start,
                exc.message,
            )
            return None
        state.index.add_entry(entry)
        state.entries[entry.id] = entry
        placement = Placement(variable=variable, candidate=candidate, entry_id=entry.id)
        state.placed.append(placement)
        return placement

    def _place(
        self,
        variable: LessonVariable,
        state: SearchState,
        writer: PlacementWriter,
        run_id: str,
        grid: TimeGrid,
        window: tuple[int, int] | None,
    ) -> Placement | None:
        candidate = self._search(variable, state.index, grid, window)
        if candidate is None:
            return None
        placement = self._commit(variable, candidate, state, writer, run_id)
        if placement is not None:
            return placement
        # The store moved under us; resync once and search again.
        self._resync(state, writer)
        candidate = self._search(variable, state.index, grid, window)
        if candidate is None:
            return None
        return self._commit(variable, candidate, state, writer, run_id)

    def _resync(self, state: SearchState, writer: PlacementWriter) -> None:
        state.index = AvailabilityIndex.load(self.db, self.school_id, writer.policy)

    def _undo(self, placements: list[Placement], state: SearchState, writer: PlacementWriter) -> None:
        writer.remove_entries([placement.entry_id for placement in placements])
        for placement in placements:
            state.index.remove_entry(placement.entry_id)
            state.entries.pop(placement.entry_id, None)
            state.placed.remove(placement)

    def _backtrack(
        self,
        variable: LessonVariable,
        state: SearchState,
        writer: PlacementWriter,
        run_id: str,
        grid: TimeGrid,
        window: tuple[int, int] | None,
    ) -> bool:
        """One bounded repair pass for a variable that found no slot.

        Lifts up to ``backtrack_limit`` of this run's latest placements that
        share a teacher or room with the variable, places the variable, then
        re-places the lifted lessons. If any step fails the pass is reverted
        so backtracking never loses a lesson that was already placed.
        """
        staff = set(variable.staff_ids)
        rooms = {room_id for room_id in variable.room_ids if room_id is not None}
        victims: list[Placement] = []
        for placement in reversed(state.placed):
            if placement.candidate.staff_id in staff or placement.candidate.room_id in rooms:
                victims.append(placement)
                if len(victims) >= self.backtrack_limit:
                    break
        if not victims:
            return False

        victims.reverse()
        logger.debug("Backtracking %s placement(s) for requirement %s", len(victims), variable.requirement_key)
        self._undo(victims, state, writer)

        fresh: list[Placement] = []
        success = True
        for pending in [variable] + [victim.variable for victim in victims]:
            placement = self._place(pending, state, writer, run_id, grid, window)
            if placement is None:
                success = False
                break
            fresh.append(placement)

        if success:
            state.backtracks += 1
            return True

        self._undo(fresh, state, writer)
        for victim in victims:
            if self._commit(victim.variable, victim.candidate, state, writer, run_id) is None:
                logger.error(
                    "Generation %s could not restore requirement %s on day %s after backtracking",
                    run_id,
                    victim.variable.requirement_key,
                    victim.candidate.day_of_week,
                )
        return False
