"""解析結果のログ.

アナライザは解析終了時（または各ステップ・各反復）に、登録されたログへ
自由 DOF ベクトルを渡す。ログは監視 DOF（モデル DOF 番号）の値だけを取り出して保持する。

  - DOFSLog:                               解析終了時の監視 DOF 値
  - LinearAnalyzerLogFactory:              子アナライザ用に DOFSLog を生成
  - TotalDisplacementsPerIterationLog:     反復毎の全変位 u + du
  - IncrementalDisplacementsLog:           増分毎の変位
  - TotalLoadsDisplacementsPerIncrementLog: 増分毎の荷重-変位（CSV 出力可）
  - ImplicitIntegrationAnalyzerLog:        時間積分の各ステップの子ログを収集
"""

from __future__ import annotations

import csv
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import numpy as np

from fe_analyzers.model import AlgebraicModel


class DOFSLog:
    """監視 DOF の最終値ログ.

    Attributes:
        dof_values: {モデル DOF 番号: 値}
        start_time, end_time: 解析の開始・終了時刻（time.time()）
    """

    def __init__(self, model: AlgebraicModel, dofs: Sequence[int]) -> None:
        self.model = model
        self.dofs = list(dofs)
        self.dof_values: dict[int, float] = {}
        self.start_time = 0.0
        self.end_time = 0.0

    def store_results(self, start_time: float, end_time: float, solution: np.ndarray) -> None:
        self.start_time = start_time
        self.end_time = end_time
        for dof in self.dofs:
            self.dof_values[dof] = self.model.extract_single_value(solution, dof)

    def __str__(self) -> str:
        return "".join(f"(dof {dof}): {val}; " for dof, val in self.dof_values.items())


class LinearAnalyzerLogFactory:
    """子アナライザの初期化毎に新しいログ一式を作るファクトリ."""

    def __init__(self, model: AlgebraicModel, dofs: Sequence[int]) -> None:
        self.model = model
        self.dofs = list(dofs)

    def create_logs(self) -> list[DOFSLog]:
        return [DOFSLog(self.model, self.dofs)]


class TotalDisplacementsPerIterationLog:
    """反復毎の全変位 u + du を監視 DOF について記録する."""

    def __init__(self, model: AlgebraicModel, watch_dofs: Sequence[int]) -> None:
        self.model = model
        self.watch_dofs = list(watch_dofs)
        self._displacements: list[dict[int, float]] = []

    def store_displacements(self, total_displacements: np.ndarray) -> None:
        self._displacements.append(
            {dof: self.model.extract_single_value(total_displacements, dof) for dof in self.watch_dofs}
        )

    def get_total_displacement(self, iteration: int, dof: int) -> float:
        return self._displacements[iteration][dof]

    def __len__(self) -> int:
        return len(self._displacements)


class IncrementalDisplacementsLog(TotalDisplacementsPerIterationLog):
    """増分（ステップ）毎の変位を監視 DOF について記録する."""


class TotalLoadsDisplacementsPerIncrementLog:
    """増分毎の荷重-変位履歴.

    収束した増分について (増分番号, 反復数, 残差比, 変位, 内力) を記録する。
    荷重には監視 DOF の内力（= 釣り合った外力）を使う。

    Args:
        model: 代数モデル
        watch_dof: 監視するモデル DOF 番号（自由 DOF）
        output_file: 指定時は log_total_data_for_increment 毎に CSV へ追記する
    """

    HEADER = ("increment", "iterations", "residual_ratio", "displacement", "load")

    def __init__(
        self,
        model: AlgebraicModel,
        watch_dof: int,
        output_file: str | Path | None = None,
    ) -> None:
        self.model = model
        self.watch_dof = watch_dof
        self.output_file = Path(output_file) if output_file is not None else None
        self.rows: list[tuple[int, int, float, float, float]] = []

    def initialize(self) -> None:
        """履歴を消去し、出力ファイルにヘッダーを書く."""
        self.rows.clear()
        if self.output_file is not None:
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.output_file, "w", newline="", encoding="utf-8") as fh:
                csv.writer(fh).writerow(self.HEADER)

    def log_total_data_for_increment(
        self,
        increment: int,
        iterations: int,
        residual_ratio: float,
        total_displacements: np.ndarray,
        total_internal_rhs: np.ndarray,
    ) -> None:
        row = (
            increment,
            iterations,
            float(residual_ratio),
            self.model.extract_single_value(total_displacements, self.watch_dof),
            self.model.extract_single_value(total_internal_rhs, self.watch_dof),
        )
        self.rows.append(row)
        if self.output_file is not None:
            with open(self.output_file, "a", newline="", encoding="utf-8") as fh:
                csv.writer(fh).writerow(row)

    def export_csv(self, filepath: str | Path) -> str:
        """履歴全体を CSV に書き出す.

        Returns:
            書き出したファイルパス
        """
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh)
            writer.writerow(self.HEADER)
            for row in self.rows:
                writer.writerow([f"{v:.10e}" if isinstance(v, float) else v for v in row])
        return str(path)


class ImplicitIntegrationAnalyzerLog:
    """時間積分の各ステップで子アナライザのログを集める.

    ログはステップ順に (型A, 型B, ..., 型A, 型B, ...) とインターリーブして溜まる。
    group_logs_by_kind() で型ごとに並べ替える。
    """

    def __init__(self) -> None:
        self.logs: list[Any] = []
        self._log_types: list[type] = []

    def store_results(self, start_time: float, end_time: float, log: Any) -> None:
        if type(log) not in self._log_types:
            self._log_types.append(type(log))
        self.logs.append(log)

    def clear_results(self) -> None:
        self.logs.clear()

    def group_logs_by_kind(self) -> None:
        """インターリーブされたログを型ごとに連続するよう並べ替える."""
        interleaving = len(self._log_types)
        if interleaving == 0:
            return
        items = len(self.logs) // interleaving
        grouped: list[Any] = [None] * len(self.logs)
        for i, log in enumerate(self.logs):
            grouped[(i % interleaving) * items + i // interleaving] = log
        self.logs = grouped
