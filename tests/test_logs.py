"""解析ログのテスト."""

from __future__ import annotations

import csv

import numpy as np
import pytest

from fe_analyzers.logs import (
    DOFSLog,
    ImplicitIntegrationAnalyzerLog,
    IncrementalDisplacementsLog,
    LinearAnalyzerLogFactory,
    TotalLoadsDisplacementsPerIncrementLog,
)
from fe_analyzers.model import AlgebraicModel


class _OtherLog:
    """型の異なるログ（インターリーブ確認用）."""

    def __init__(self, tag: int) -> None:
        self.tag = tag


class TestDOFSLog:
    """監視 DOF の最終値."""

    def test_store_uses_model_numbering(self):
        model = AlgebraicModel(3, fixed_dofs=[0])
        log = DOFSLog(model, [2])
        log.store_results(1.0, 2.0, np.array([10.0, 20.0]))
        assert log.dof_values == {2: 20.0}
        assert (log.start_time, log.end_time) == (1.0, 2.0)
        assert str(log) == "(dof 2): 20.0; "

    def test_factory_creates_fresh_logs(self):
        model = AlgebraicModel(2)
        factory = LinearAnalyzerLogFactory(model, [0, 1])
        first, second = factory.create_logs(), factory.create_logs()
        assert len(first) == 1
        assert first[0] is not second[0]
        assert first[0].dofs == [0, 1]

    def test_fixed_dof_rejected(self):
        model = AlgebraicModel(2, fixed_dofs=[0])
        log = DOFSLog(model, [0])
        with pytest.raises(KeyError):
            log.store_results(0.0, 0.0, np.array([1.0]))


class TestIncrementLogs:
    """増分・反復ログ."""

    def test_incremental_displacements(self):
        model = AlgebraicModel(2)
        log = IncrementalDisplacementsLog(model, [1])
        log.store_displacements(np.array([0.0, 1.5]))
        log.store_displacements(np.array([0.0, 2.5]))
        assert len(log) == 2
        assert log.get_total_displacement(1, 1) == 2.5

    def test_export_csv(self, tmp_path):
        model = AlgebraicModel(1)
        log = TotalLoadsDisplacementsPerIncrementLog(model, 0)
        log.initialize()
        log.log_total_data_for_increment(0, 3, 1e-4, np.array([0.25]), np.array([5.0]))
        log.log_total_data_for_increment(1, 2, 1e-5, np.array([0.5]), np.array([10.0]))
        path = log.export_csv(tmp_path / "out" / "history.csv")
        with open(path, encoding="utf-8") as fh:
            rows = list(csv.reader(fh))
        assert rows[0] == list(TotalLoadsDisplacementsPerIncrementLog.HEADER)
        assert len(rows) == 3
        assert rows[2][0] == "1"
        assert float(rows[2][3]) == pytest.approx(0.5)
        assert float(rows[2][4]) == pytest.approx(10.0)

    def test_initialize_clears_rows(self):
        model = AlgebraicModel(1)
        log = TotalLoadsDisplacementsPerIncrementLog(model, 0)
        log.log_total_data_for_increment(0, 1, 0.0, np.array([1.0]), np.array([1.0]))
        log.initialize()
        assert log.rows == []


class TestImplicitIntegrationAnalyzerLog:
    """時間積分の子ログ収集."""

    def test_group_logs_by_kind(self):
        model = AlgebraicModel(1)
        storage = ImplicitIntegrationAnalyzerLog()
        for step in range(3):
            storage.store_results(0.0, 0.0, DOFSLog(model, [0]))
            storage.store_results(0.0, 0.0, _OtherLog(step))
        storage.group_logs_by_kind()
        kinds = [type(log) for log in storage.logs]
        assert kinds == [DOFSLog] * 3 + [_OtherLog] * 3
        assert [log.tag for log in storage.logs[3:]] == [0, 1, 2]

    def test_group_empty(self):
        storage = ImplicitIntegrationAnalyzerLog()
        storage.group_logs_by_kind()
        assert storage.logs == []

    def test_clear_results(self):
        storage = ImplicitIntegrationAnalyzerLog()
        storage.store_results(0.0, 0.0, _OtherLog(0))
        storage.clear_results()
        assert storage.logs == []
