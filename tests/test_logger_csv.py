"""Nonlinear solver logger: table columns, stdout rows and CSV output."""

import csv

from gcp_nonlinear.logger import IterationRecord, NonlinearSolverLogger


def _record(it, **kwargs):
    values = dict(
        step=3,
        time=0.25,
        nonlinear_iteration=it,
        linear_iterations=12,
        line_search_iterations=0,
        newton_update_norm=1e-3 / it,
        residual_norm=1e-2 / it,
        convergence_rate=1.87,
        newton_update_norms={"u": 1e-3 / it, "gamma": 2e-4 / it},
        residual_norms={"u": 5e-3 / it, "gamma": 1e-3 / it},
    )
    values.update(kwargs)
    return IterationRecord(**values)


def test_columns_follow_field_names():
    logger = NonlinearSolverLogger(field_names=["u", "gamma"])
    assert logger.columns == [
        "N-Itr", "K-Itr", "L-Itr",
        "(NS)_L2", "(NS_u)_L2", "(NS_gamma)_L2",
        "(R)_L2", "(R_u)_L2", "(R_gamma)_L2",
        "C-Rate",
    ]
    assert len(logger.row(_record(1))) == len(logger.columns)


def test_missing_field_norm_is_zero():
    logger = NonlinearSolverLogger(field_names=["u", "theta"])
    row = logger.row(_record(1))
    assert row[logger.columns.index("(NS_theta)_L2")] == "0.000e+00"


def test_silent_unless_verbose(capsys):
    logger = NonlinearSolverLogger(field_names=["u"])
    logger.print_step_header(0, 0.1)
    logger.log(_record(1))
    logger.print_message("hello")
    assert capsys.readouterr().out == ""
    assert len(logger.records) == 1


def test_verbose_prints_table(capsys):
    logger = NonlinearSolverLogger(field_names=["u"], verbose=True)
    logger.print_step_header(2, 0.5)
    logger.log(_record(1))
    logger.print_message("converged")
    out = capsys.readouterr().out
    assert "[newton] step=2" in out
    assert "(R_u)_L2" in out
    assert "1.000e-02" in out
    assert "[newton] converged" in out


def test_csv_header_written_once(tmp_path):
    path = tmp_path / "iterations.csv"
    logger = NonlinearSolverLogger(field_names=["u", "gamma"], output_file=str(path))
    for it in (1, 2, 3):
        logger.log(_record(it, line_search_iterations=it - 1))

    with open(path, newline="") as f:
        rows = list(csv.reader(f))
    assert rows[0] == ["step", "time"] + logger.columns
    assert len(rows) == 4
    assert [r[2] for r in rows[1:]] == ["1", "2", "3"]
    assert [r[4] for r in rows[1:]] == ["0", "1", "2"]
    assert float(rows[1][rows[0].index("(R)_L2")]) == 1e-2
    assert rows[1][1] == "0.25"
