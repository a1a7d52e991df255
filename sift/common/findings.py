"""
Key findings normalization.

Every stored or rendered record carries exactly five findings, each in
``label: detail`` shape. Missing or too-short findings are replaced by
generic placeholders; unlabelled findings get a label synthesized from
their leading words.
"""

import re
from typing import Iterable, List, Optional, Tuple

FINDINGS_COUNT = 5
MIN_FINDING_LENGTH = 15

PLACEHOLDER_FINDINGS = [
    ("Core Point", "The source's central argument is summarized in the overview above."),
    ("Evidence", "Supporting data was not captured for this item; see the original source."),
    ("Implication", "Review the source to judge how this applies to current client work."),
    ("Context", "Positioned within the wider industry conversation on this topic."),
    ("Next Step", "Read the full source before citing specific figures."),
]

# **Label:** detail | **Label**: detail | Label: detail
_BOLD_LABEL_RE = re.compile(r"^\*\*(?P<label>[^*]{1,80}?)\s*:?\s*\*\*\s*:?\s*(?P<detail>.+)$", re.S)
_PLAIN_LABEL_RE = re.compile(r"^(?P<label>[^:\n]{1,60}):\s+(?P<detail>.+)$", re.S)
_LEADING_MARKER_RE = re.compile(r"^\s*(?:[-*]|\d+[.)])\s+")
_MAX_LABEL_WORDS = 8
_SYNTH_LABEL_WORDS = 3


def split_finding(text: str) -> Optional[Tuple[str, str]]:
    """Return (label, detail) if the finding already carries a label."""
    if not text:
        return None
    text = _LEADING_MARKER_RE.sub("", text.strip())

    match = _BOLD_LABEL_RE.match(text) or _PLAIN_LABEL_RE.match(text)
    if not match:
        return None

    label = match.group("label").strip().strip("*").strip()
    detail = match.group("detail").strip()
    if not label or not detail or len(label.split()) > _MAX_LABEL_WORDS:
        return None
    # "https://..." is not a label
    if label.lower() in ("http", "https"):
        return None
    return label, detail


def coerce_finding(text: str) -> Tuple[str, str]:
    """Force a finding into (label, detail), synthesizing a label if needed."""
    parts = split_finding(text)
    if parts:
        return parts

    cleaned = _LEADING_MARKER_RE.sub("", (text or "").strip()).strip("*").strip()
    words = cleaned.split()
    label_words = [w.strip(".,;:!?\"'()") for w in words[:_SYNTH_LABEL_WORDS]]
    label = " ".join(w for w in label_words if w).title() or "Finding"
    return label, cleaned


def normalize_findings(
    findings: Optional[Iterable[str]],
    min_length: int = MIN_FINDING_LENGTH,
) -> List[Tuple[str, str]]:
    """Return exactly five (label, detail) pairs.

    Findings shorter than ``min_length`` characters are discarded; the list
    is padded with placeholders and truncated to five.
    """
    pairs: List[Tuple[str, str]] = []
    for finding in findings or []:
        if not isinstance(finding, str):
            continue
        if len(finding.strip()) < min_length:
            continue
        pairs.append(coerce_finding(finding))
        if len(pairs) == FINDINGS_COUNT:
            break

    used = {label.lower() for label, _ in pairs}
    for label, detail in PLACEHOLDER_FINDINGS:
        if len(pairs) >= FINDINGS_COUNT:
            break
        if label.lower() in used:
            continue
        pairs.append((label, detail))

    # All placeholder labels may collide with real ones; pad generically.
    while len(pairs) < FINDINGS_COUNT:
        n = len(pairs) + 1
        pairs.append((f"Point {n}", PLACEHOLDER_FINDINGS[0][1]))

    return pairs


def format_stored_finding(label: str, detail: str) -> str:
    """Storage shape: ``**Label:** detail``"""
    return f"**{label}:** {detail}"


def ensure_five_findings(
    findings: Optional[Iterable[str]],
    min_length: int = MIN_FINDING_LENGTH,
) -> List[str]:
    """Normalize findings to the five-item storage form."""
    return [format_stored_finding(label, detail)
            for label, detail in normalize_findings(findings, min_length)]
