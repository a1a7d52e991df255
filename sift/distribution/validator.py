"""
Compliance Validator

Re-scans a rendered message for the format contract: no forbidden glyphs or
retired phrases, the three section headers in order, and five numbered
findings in ``label: detail`` form. Violations are reported and logged;
they never block delivery.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List

from .handlers.base import Message
from .renderer import FORBIDDEN_GLYPHS, RETIRED_PHRASES, SECTION_HEADERS
from ..common.findings import FINDINGS_COUNT

logger = logging.getLogger("sift.distribution.validator")


def _header_re(header: str) -> re.Pattern:
    # A header owns its whole line, optionally wrapped in markdown emphasis
    return re.compile(r"^[*_#\s]*" + re.escape(header) + r"[*_:\s]*$", re.MULTILINE | re.IGNORECASE)


_HEADER_RES = [(h, _header_re(h)) for h in SECTION_HEADERS]


@dataclass
class ValidationReport:
    valid: bool
    violations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "violations": self.violations}


class ComplianceValidator:
    """Checks rendered text against the distribution format."""

    def validate(self, text: str) -> ValidationReport:
        violations: List[str] = []
        text = text or ""

        for glyph in FORBIDDEN_GLYPHS:
            if glyph in text:
                violations.append(f"forbidden glyph {glyph!r}")

        lowered = text.lower()
        for phrase in RETIRED_PHRASES:
            if phrase.lower() in lowered:
                violations.append(f"retired phrase {phrase!r}")

        positions = []
        for header, pattern in _HEADER_RES:
            match = pattern.search(text)
            if match is None:
                violations.append(f"missing section header {header!r}")
            else:
                positions.append(match.start())
        if len(positions) == len(SECTION_HEADERS) and positions != sorted(positions):
            violations.append("section headers out of order")

        for n in range(1, FINDINGS_COUNT + 1):
            marker = re.search(rf"^\s*{n}\.\s+(.*)$", text, re.MULTILINE)
            if marker is None:
                violations.append(f"missing finding marker '{n}.'")
            elif not re.match(r"[^:\n]+:\s+\S", marker.group(1)):
                violations.append(f"finding {n} is not in 'label: detail' form")

        return ValidationReport(valid=not violations, violations=violations)

    def check(self, message: Message) -> ValidationReport:
        """Validate a message, log violations and attach them to it."""
        report = self.validate(message.text)
        message.violations = list(report.violations)
        if not report.valid:
            logger.warning(
                "Message for %s has %d compliance violation(s): %s",
                message.record_id, len(report.violations), "; ".join(report.violations),
            )
        return report
