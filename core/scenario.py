"""
Scenario execution: an ordered list of tests run through the orchestrator.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.logger import get_structured_logger
from core.metrics import MetricsCollector
from core.orchestrator import Outcome, OutcomeStatus, RetryOrchestrator, TestMetadata

ScenarioTest = Tuple[Callable[[], None], TestMetadata]


@dataclass
class ScenarioResult:
    outcomes: List[Tuple[TestMetadata, Outcome]] = field(default_factory=list)
    counters: Dict[str, Any] = field(default_factory=dict)
    stopped: bool = False

    def by_status(self, status: OutcomeStatus) -> List[str]:
        return [metadata.name for metadata, outcome in self.outcomes if outcome.status is status]

    @property
    def succeeded(self) -> bool:
        return not self.stopped and not self.by_status(OutcomeStatus.FAILED)


class ScenarioRunner:
    """
    Runs the tests of a scenario in order.

    Every test goes through the orchestrator, which also reports the tests
    following a scenario stop or a step block as skipped.
    """

    def __init__(
        self,
        orchestrator: RetryOrchestrator,
        tests: List[ScenarioTest],
        name: str = "scenario",
        metrics: Optional[MetricsCollector] = None,
    ):
        self.orchestrator = orchestrator
        self.tests = list(tests)
        self.name = name
        self.metrics = metrics
        self.logger = get_structured_logger(__name__)

    def run(self) -> ScenarioResult:
        self.orchestrator.reset()
        counters = self.orchestrator.counters
        counters.defined_tests = len(self.tests)
        self.logger.info("scenario_started", scenario=self.name, tests=len(self.tests))

        result = ScenarioResult()
        for unit_of_work, metadata in self.tests:
            outcome = self.orchestrator.run(unit_of_work, metadata)
            result.outcomes.append((metadata, outcome))

        result.stopped = self.orchestrator.stop_scenario
        result.counters = counters.snapshot()
        counters.log_results()
        self.logger.info(
            "scenario_finished",
            scenario=self.name,
            stopped=result.stopped,
            failed=result.by_status(OutcomeStatus.FAILED),
            skipped=len(result.by_status(OutcomeStatus.SKIPPED)),
        )
        if self.metrics is not None:
            self.metrics.export_metrics_to_json()
        return result
