"""Diagnostic messages for project loading and execution.

Loading never stops at the first bad script or asset: the decoder, the
converter and the scheduler record what they skipped or replaced here, keyed
by target name and script index, and carry on.
"""

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, TextIO


class DiagnosticLevel(Enum):
    ERROR = "Error"
    WARNING = "Warning"
    INFO = "Info"


@dataclass
class Diagnostic:
    level: DiagnosticLevel
    message: str
    target: str
    script: Optional[int] = None
    # Extra detail, e.g. the index path of an undecodable block
    detail: Optional[str] = None

    def __str__(self) -> str:
        where = f"Target '{self.target}'"
        if self.script is not None:
            where += f" Script {self.script}"
        result = f"{self.level.value}: {self.message}: {where}"
        if self.detail:
            result += f"\n  -> {self.detail}"
        return result


@dataclass
class DiagnosticContext:
    """Records diagnostics for one target into a shared list."""
    target_name: str = "Stage"
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def add(self, level: DiagnosticLevel, message: str,
            script: Optional[int] = None, detail: Optional[str] = None) -> None:
        self.diagnostics.append(Diagnostic(level, message, self.target_name, script, detail))

    def error(self, message: str, script: Optional[int] = None, detail: Optional[str] = None) -> None:
        self.add(DiagnosticLevel.ERROR, message, script, detail)

    def warning(self, message: str, script: Optional[int] = None, detail: Optional[str] = None) -> None:
        self.add(DiagnosticLevel.WARNING, message, script, detail)

    def info(self, message: str, script: Optional[int] = None, detail: Optional[str] = None) -> None:
        self.add(DiagnosticLevel.INFO, message, script, detail)


class DiagnosticCollector:
    """Every diagnostic of one load or one running generation, in order."""

    def __init__(self) -> None:
        self.all_diagnostics: List[Diagnostic] = []
        self._contexts: Dict[str, DiagnosticContext] = {}

    def context(self, target_name: str) -> DiagnosticContext:
        ctx = self._contexts.get(target_name)
        if ctx is None:
            ctx = DiagnosticContext(target_name=target_name, diagnostics=self.all_diagnostics)
            self._contexts[target_name] = ctx
        return ctx

    def at_level(self, level: DiagnosticLevel) -> List[Diagnostic]:
        return [d for d in self.all_diagnostics if d.level == level]

    def has_errors(self) -> bool:
        return bool(self.at_level(DiagnosticLevel.ERROR))

    def has_warnings(self) -> bool:
        return bool(self.at_level(DiagnosticLevel.WARNING))

    def print_all(self, file: Optional[TextIO] = None) -> None:
        for diag in self.all_diagnostics:
            print(diag, file=file if file is not None else sys.stderr)

    def summary(self) -> str:
        """Return e.g. ``"1 error, 2 warnings"``, or ``"No issues"``."""
        parts = []
        for level, noun in ((DiagnosticLevel.ERROR, "error"), (DiagnosticLevel.WARNING, "warning")):
            n = len(self.at_level(level))
            if n:
                parts.append(f"{n} {noun}{'s' if n != 1 else ''}")
        return ", ".join(parts) if parts else "No issues"
