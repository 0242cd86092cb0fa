"""Pipeline stage executors."""

from dreamcut.stages.asset_analysis import AssetAnalyzer
from dreamcut.stages.query_analysis import QueryAnalysis, QueryAnalyzer
from dreamcut.stages.script_generation import Script, ScriptGenerator
from dreamcut.stages.synthesis import CreativeBrief, Synthesizer

__all__ = [
    "AssetAnalyzer",
    "CreativeBrief",
    "QueryAnalysis",
    "QueryAnalyzer",
    "Script",
    "ScriptGenerator",
    "Synthesizer",
]
