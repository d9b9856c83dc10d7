"""FormPilot engine — core form-filling modules.

Provides the multi-pass form-filling engine:
- Distiller: live UI tree -> compact annotated HTML + field descriptors
- diff_fields: which fields are new since earlier passes
- ClaudePlanner: profile + distilled form -> Plan of field actions
- FormActionExecutor: applies a Plan to the page
- ReconciliationLoop: distill -> plan -> filter -> execute -> settle, per pass
- BrowserRunner: Playwright browser lifecycle
- ReportGenerator: markdown session report
- CostTracker: planner token cost tracking and budget enforcement
"""

from formpilot.engine.action_executor import FormActionExecutor
from formpilot.engine.browser_runner import BrowserRunner, wait_for_quiescence
from formpilot.engine.cost_tracker import BudgetExceededError, CostTracker
from formpilot.engine.differ import diff_fields
from formpilot.engine.distiller import Distiller, FieldDescriptor, IdentifierAllocator, SemanticSnapshot
from formpilot.engine.matcher import MatchResult, find_best_match
from formpilot.engine.option_resolver import OPTION_STRATEGIES, resolve_options
from formpilot.engine.planner import ClaudePlanner
from formpilot.engine.protocols import Action, ActionResult, FormPlanner, OracleError, Plan, PlanParseError
from formpilot.engine.reconciler import (
    ManualField,
    PassReport,
    ReconciliationLoop,
    SessionContext,
    SessionResult,
)
from formpilot.engine.report_generator import ReportGenerator

__all__ = [
    "OPTION_STRATEGIES",
    "Action",
    "ActionResult",
    "BrowserRunner",
    "BudgetExceededError",
    "ClaudePlanner",
    "CostTracker",
    "Distiller",
    "FieldDescriptor",
    "FormActionExecutor",
    "FormPlanner",
    "IdentifierAllocator",
    "ManualField",
    "MatchResult",
    "OracleError",
    "PassReport",
    "Plan",
    "PlanParseError",
    "ReconciliationLoop",
    "ReportGenerator",
    "SemanticSnapshot",
    "SessionContext",
    "SessionResult",
    "diff_fields",
    "find_best_match",
    "resolve_options",
    "wait_for_quiescence",
]
