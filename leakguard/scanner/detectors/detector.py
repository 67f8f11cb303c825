"""Detector - runs the pattern registry against extracted text.

Policy: one Finding per rule per file, for the first match the rule
accepts. A file with hundreds of email addresses yields one `email`
finding, which bounds alert volume per scan.

Concurrency Model:
    Each rule is evaluated on a shared ThreadPoolExecutor so that its
    wall-clock time can be bounded with future.result(timeout=...).
    The budget is measured from the moment the rule starts running, so
    time spent queued behind other scans never counts against it.
    A rule that exceeds its budget is treated as non-matching for that
    file and logged; it is never fatal.

Thread Timeout Limitations:
    Python threads cannot be killed. A timed-out evaluation that already
    started keeps running in the background until the regex engine
    returns. Such runaway evaluations are counted and a critical warning
    is logged once the count reaches MAX_RUNAWAY_EVALUATIONS. Built-in
    rules are linear-time, so runaways indicate a bad custom rule.
"""

import atexit
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ...core.exceptions import RuleTimeoutError
from ...core.types import Finding, PatternRule, ScannedContent
from ..constants import (
    MAX_CANDIDATES_PER_RULE,
    MAX_DETECTOR_WORKERS,
    MAX_RUNAWAY_EVALUATIONS,
    RULE_TIMEOUT,
)
from .pattern_registry import PatternRegistry

logger = logging.getLogger(__name__)


@dataclass
class DetectionMetadata:
    """Bookkeeping for one detect() call."""
    rules_evaluated: List[str] = field(default_factory=list)
    rules_timed_out: List[str] = field(default_factory=list)
    rules_failed: Dict[str, str] = field(default_factory=dict)
    runaway_evaluations: int = 0

    @property
    def is_complete(self) -> bool:
        """True when every rule ran to completion."""
        return not self.rules_timed_out and not self.rules_failed


class _RuleRun:
    """Start time of one queued rule evaluation, set by the worker thread."""

    __slots__ = ("started_at",)

    def __init__(self):
        self.started_at: Optional[float] = None


def _run_rule(run: _RuleRun, rule: PatternRule, text: str, max_candidates: int) -> Optional[str]:
    run.started_at = time.monotonic()
    return first_match(rule, text, max_candidates)


def first_match(rule: PatternRule, text: str, max_candidates: int = MAX_CANDIDATES_PER_RULE) -> Optional[str]:
    """
    Return the first match of rule in text that passes its validator.

    Stops after max_candidates rejected matches.
    """
    for examined, match in enumerate(rule.regex.finditer(text)):
        if examined >= max_candidates:
            logger.debug(f"Rule {rule.name}: {max_candidates} candidates rejected, giving up")
            break
        value = match.group(0)
        if not value or not value.strip():
            continue
        if rule.accepts(value):
            return value
    return None


class Detector:
    """
    Evaluate every rule of a registry against scanned content.

    Rules are independent: evaluation order does not affect which findings
    are produced, only the order of the returned list (registry order).
    """

    def __init__(
        self,
        registry: PatternRegistry,
        rule_timeout: float = RULE_TIMEOUT,
        executor: Optional[ThreadPoolExecutor] = None,
        max_candidates: int = MAX_CANDIDATES_PER_RULE,
    ):
        if rule_timeout <= 0:
            raise ValueError("rule_timeout must be positive")

        self.registry = registry
        self.rule_timeout = rule_timeout
        self.max_candidates = max_candidates

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=MAX_DETECTOR_WORKERS,
            thread_name_prefix="rule_",
        )
        if self._owns_executor:
            atexit.register(self.close)

        self._runaway_count = 0
        self._runaway_lock = threading.Lock()

    @property
    def runaway_evaluations(self) -> int:
        """Number of evaluations that timed out and could not be cancelled."""
        with self._runaway_lock:
            return self._runaway_count

    def _track_runaway(self, rule_name: str) -> int:
        with self._runaway_lock:
            self._runaway_count += 1
            count = self._runaway_count

        if count >= MAX_RUNAWAY_EVALUATIONS:
            logger.critical(
                f"CRITICAL: {count} runaway rule evaluations (max: {MAX_RUNAWAY_EVALUATIONS}). "
                f"Rule {rule_name} is the latest. Review custom rules for catastrophic backtracking."
            )
        return count

    def _await_rule(self, future: Future, run: _RuleRun) -> Optional[str]:
        """
        Wait for a rule result, allowing rule_timeout of running time.

        A rule still queued behind other scans keeps its full budget.

        Raises:
            TimeoutError: If the rule has been running longer than rule_timeout
        """
        while True:
            started_at = run.started_at
            if started_at is None:
                remaining = self.rule_timeout
            else:
                remaining = max(self.rule_timeout - (time.monotonic() - started_at), 0.0)
            try:
                return future.result(timeout=remaining)
            except TimeoutError:
                started_at = run.started_at
                if started_at is not None and time.monotonic() - started_at >= self.rule_timeout:
                    raise

    def detect(self, content: ScannedContent) -> List[Finding]:
        """
        Detect sensitive data in scanned content.

        Returns:
            Findings in registry order; empty if nothing matched
        """
        findings, _ = self.detect_with_metadata(content)
        return findings

    def detect_with_metadata(self, content: ScannedContent) -> Tuple[List[Finding], DetectionMetadata]:
        """Detect and also report which rules timed out or failed."""
        metadata = DetectionMetadata()
        if not content.text or not len(self.registry):
            return [], metadata

        futures: List[Tuple[PatternRule, _RuleRun, Future]] = []
        for rule in self.registry:
            run = _RuleRun()
            futures.append((rule, run, self._executor.submit(
                _run_rule, run, rule, content.text, self.max_candidates,
            )))

        findings: List[Finding] = []
        for rule, run, future in futures:
            try:
                matched = self._await_rule(future, run)
                metadata.rules_evaluated.append(rule.name)
            except TimeoutError:
                cancelled = future.cancel()
                if not cancelled:
                    metadata.runaway_evaluations = self._track_runaway(rule.name)
                error = RuleTimeoutError(rule.name, self.rule_timeout, content.path)
                metadata.rules_timed_out.append(rule.name)
                logger.warning(f"{error} on {content.path}, treating as no match (cancelled={cancelled})")
                continue
            except Exception as e:
                metadata.rules_failed[rule.name] = str(e)
                logger.error(f"Rule {rule.name} failed on {content.path}: {e}")
                continue

            if matched is not None:
                findings.append(Finding(
                    rule_name=rule.name,
                    matched_text=matched,
                    file_path=content.path,
                ))

        if findings:
            # Log only rule names, never matched values
            logger.info(f"{content.path}: {len(findings)} findings {[f.rule_name for f in findings]}")
        else:
            logger.debug(f"{content.path}: no findings")

        return findings, metadata

    def close(self) -> None:
        """Shut down the owned rule executor."""
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
