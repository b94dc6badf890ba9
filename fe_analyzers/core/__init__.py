"""fe_analyzers.core - アナライザの抽象インタフェース・戻り値型・状態.

Protocol 階層:
  LinearSystemProtocol      : 線形系（行列・右辺・解）
  AlgebraicModelProtocol    : 代数モデル（ゼロベクトル・DOF 番号付け）
  ProviderProtocol          : 物理プロバイダ（各階行列・外力・内力）
  ChildAnalyzerProtocol     : 増分ソルバー
  ParentAnalyzerProtocol    : 親アナライザ（静解析・時間積分）
  StepwiseAnalyzerProtocol  : ステップ単位で駆動できる親アナライザ
"""

from fe_analyzers.core.protocols import (
    AlgebraicModelProtocol,
    ChildAnalyzerProtocol,
    DifferentiationOrder,
    LinearSystemProtocol,
    ParentAnalyzerProtocol,
    ParentContract,
    ProviderProtocol,
    StepwiseAnalyzerProtocol,
    TransientAnalysisPhase,
)
from fe_analyzers.core.results import (
    AnalysisStatistics,
    BDFCoefficients,
    CentralDifferencesCoefficients,
    GeneralizedAlphaCoefficients,
    NewmarkCoefficients,
    TransientAnalysisCoefficients,
)
from fe_analyzers.core.state import (
    AnalyzerState,
    BDFState,
    CentralDifferencesState,
    GeneralizedAlphaState,
    IncrementState,
    NewmarkState,
    PseudoTransientState,
    StaticState,
    ThermalState,
    check_state_type,
    restore_vector,
)

__all__ = [
    "LinearSystemProtocol",
    "AlgebraicModelProtocol",
    "ProviderProtocol",
    "ChildAnalyzerProtocol",
    "ParentAnalyzerProtocol",
    "StepwiseAnalyzerProtocol",
    "ParentContract",
    "DifferentiationOrder",
    "TransientAnalysisPhase",
    "AnalysisStatistics",
    "TransientAnalysisCoefficients",
    "NewmarkCoefficients",
    "GeneralizedAlphaCoefficients",
    "BDFCoefficients",
    "CentralDifferencesCoefficients",
    "AnalyzerState",
    "StaticState",
    "PseudoTransientState",
    "IncrementState",
    "NewmarkState",
    "GeneralizedAlphaState",
    "BDFState",
    "CentralDifferencesState",
    "ThermalState",
    "check_state_type",
    "restore_vector",
]
