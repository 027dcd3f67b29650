from dataclasses import dataclass
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class Violation:
    """A single broken constraint, with enough detail to fix it."""

    field: str
    message: str
    expected: Any = None
    actual: Any = None

    def __str__(self) -> str:
        text = f"{self.field}: {self.message}"
        if self.expected is not None or self.actual is not None:
            text += f" (expected {self.expected}, got {self.actual})"
        return text


class MalariaSimError(Exception):
    pass


class _ViolationsError(MalariaSimError):
    violations: tuple[Violation, ...]

    def __init__(self, violations: Iterable[Violation]):
        self.violations = tuple(violations)
        lines = "\n".join(f"  - {v}" for v in self.violations)
        super().__init__(
            f"{len(self.violations)} constraint(s) violated:\n{lines}"
        )

    @property
    def fields(self) -> list[str]:
        return [v.field for v in self.violations]


class ValidationError(_ViolationsError, ValueError):
    """Malformed or inconsistent parameters."""


class ScheduleError(_ViolationsError):
    """Intervention events out of order."""


class ConvergenceError(MalariaSimError):
    def __init__(
        self,
        message: str,
        iterations: Optional[int] = None,
        residual: Optional[float] = None,
        tolerance: Optional[float] = None,
    ):
        self.iterations = iterations
        self.residual = residual
        self.tolerance = tolerance
        details = []
        if iterations is not None:
            details.append(f"iterations={iterations}")
        if residual is not None:
            details.append(f"residual={residual:.3g}")
        if tolerance is not None:
            details.append(f"tolerance={tolerance:.3g}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class SchemaError(MalariaSimError):
    def __init__(self, unknown_columns: Iterable[str]):
        self.unknown_columns = tuple(unknown_columns)
        super().__init__(
            "Output columns reference undefined compartments: "
            + ", ".join(self.unknown_columns)
        )


class SimulationCancelled(MalariaSimError):
    def __init__(self, timestep: int):
        self.timestep = timestep
        super().__init__(f"Simulation cancelled before timestep {timestep}")
