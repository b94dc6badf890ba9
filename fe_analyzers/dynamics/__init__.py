"""fe_analyzers.dynamics - 時間積分アナライザ.

  NewmarkDynamicAnalyzer             : Newmark-β（2 階系）
  GeneralizedAlphaDynamicAnalyzer    : 一般化α（2 階系、数値減衰）
  BDFDynamicAnalyzer                 : 後退差分 k=1..5（1 階系）
  CentralDifferencesDynamicAnalyzer  : 中心差分（陽解法）
  ThermalDynamicAnalyzer             : θ 法（非定常熱伝導）
  PseudoTransientAnalyzer            : 準静的な荷重履歴
"""

from fe_analyzers.dynamics.base import TimeIntegrationConfig, TransientAnalyzerBase
from fe_analyzers.dynamics.bdf import BDFConfig, BDFDynamicAnalyzer
from fe_analyzers.dynamics.central_differences import (
    CentralDifferencesConfig,
    CentralDifferencesDynamicAnalyzer,
)
from fe_analyzers.dynamics.generalized_alpha import (
    GeneralizedAlphaConfig,
    GeneralizedAlphaDynamicAnalyzer,
)
from fe_analyzers.dynamics.newmark import NewmarkConfig, NewmarkDynamicAnalyzer
from fe_analyzers.dynamics.pseudo_transient import PseudoTransientAnalyzer, PseudoTransientConfig
from fe_analyzers.dynamics.thermal import ThermalConfig, ThermalDynamicAnalyzer

__all__ = [
    "TimeIntegrationConfig",
    "TransientAnalyzerBase",
    "NewmarkConfig",
    "NewmarkDynamicAnalyzer",
    "GeneralizedAlphaConfig",
    "GeneralizedAlphaDynamicAnalyzer",
    "BDFConfig",
    "BDFDynamicAnalyzer",
    "CentralDifferencesConfig",
    "CentralDifferencesDynamicAnalyzer",
    "ThermalConfig",
    "ThermalDynamicAnalyzer",
    "PseudoTransientConfig",
    "PseudoTransientAnalyzer",
]
