"""Per-iteration logging of the nonlinear solver.

Rows are printed as a fixed-width table when ``verbose`` and, if an output
file is configured, appended as CSV rows. The solver core only fills in
:class:`IterationRecord` values.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence


@dataclass
class IterationRecord:
    step: int
    time: float
    nonlinear_iteration: int
    linear_iterations: int
    line_search_iterations: int
    newton_update_norm: float
    residual_norm: float
    convergence_rate: float
    newton_update_norms: Dict[str, float] = field(default_factory=dict)
    residual_norms: Dict[str, float] = field(default_factory=dict)


def _fmt(x: float) -> str:
    return f"{float(x):.3e}"


class NonlinearSolverLogger:
    """Collects :class:`IterationRecord` rows.

    Parameters
    ----------
    field_names : sequence of str
        Names of the per-field norms (columns ``(NS_<name>)_L2`` and
        ``(R_<name>)_L2``).
    verbose : bool
        Print every record to stdout.
    output_file : str, optional
        CSV file; the header is written on the first record.
    """

    def __init__(self, field_names: Sequence[str] = (), verbose: bool = False, output_file: Optional[str] = None):
        self.field_names = [str(n) for n in field_names]
        self.verbose = bool(verbose)
        self.output_file = output_file
        self.records: List[IterationRecord] = []
        self._csv_header_written = False

    @property
    def columns(self) -> List[str]:
        cols = ["N-Itr", "K-Itr", "L-Itr", "(NS)_L2"]
        cols += [f"(NS_{n})_L2" for n in self.field_names]
        cols += ["(R)_L2"]
        cols += [f"(R_{n})_L2" for n in self.field_names]
        cols += ["C-Rate"]
        return cols

    def print_step_header(self, step: int, time: float) -> None:
        if not self.verbose:
            return
        print(f"\n[newton] step={step:d}  t={time:.6g}")
        print("  " + " ".join(f"{c:>11s}" for c in self.columns))

    def row(self, record: IterationRecord) -> List[str]:
        values = [
            str(record.nonlinear_iteration),
            str(record.linear_iterations),
            str(record.line_search_iterations),
            _fmt(record.newton_update_norm),
        ]
        values += [_fmt(record.newton_update_norms.get(n, 0.0)) for n in self.field_names]
        values.append(_fmt(record.residual_norm))
        values += [_fmt(record.residual_norms.get(n, 0.0)) for n in self.field_names]
        values.append(f"{record.convergence_rate:.2f}")
        return values

    def log(self, record: IterationRecord) -> None:
        self.records.append(record)
        if self.verbose:
            print("  " + " ".join(f"{v:>11s}" for v in self.row(record)))
        if self.output_file:
            self._append_csv(record)

    def print_message(self, message: str) -> None:
        if self.verbose:
            print(f"[newton] {message}")

    def _append_csv(self, record: IterationRecord) -> None:
        header = ["step", "time"] + self.columns
        mode = "a" if self._csv_header_written else "w"
        with open(self.output_file, mode, newline="") as f:
            writer = csv.writer(f)
            if not self._csv_header_written:
                writer.writerow(header)
                self._csv_header_written = True
            writer.writerow([record.step, f"{record.time:.12g}"] + self.row(record))
