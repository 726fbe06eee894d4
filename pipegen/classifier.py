"""Language classifier: probe results to exactly one ecosystem."""

from __future__ import annotations

from typing import Callable, Dict, Optional, Sequence

from .errors import DetectionError, ValidationError
from .logging import get_logger
from .models import Classification, Ecosystem, ProbeResult, Provenance
from .probe import describe
from .rules import ECOSYSTEM_RULES, EcosystemRule

# (detected, hinted) -> True to adopt the hint.
Confirmer = Callable[[str, str], bool]

_HINT_ALIASES: Dict[str, str] = {
    "py": Ecosystem.PYTHON,
    "python3": Ecosystem.PYTHON,
    "js": Ecosystem.NODE,
    "javascript": Ecosystem.NODE,
    "typescript": Ecosystem.NODE,
    "ts": Ecosystem.NODE,
    "nodejs": Ecosystem.NODE,
    "node.js": Ecosystem.NODE,
    "kotlin": Ecosystem.JAVA,
    "golang": Ecosystem.GO,
    "rs": Ecosystem.RUST,
    "rb": Ecosystem.RUBY,
}


def decline(detected: str, hinted: str) -> bool:
    """Confirmer that always keeps the detected ecosystem."""
    return False


def accept(detected: str, hinted: str) -> bool:
    """Confirmer that always adopts the declared ecosystem."""
    return True


def normalise_hint(hint: Optional[str]) -> Optional[str]:
    """Map a user-supplied language name onto the closed ecosystem set."""
    if hint is None:
        return None
    value = hint.strip().lower()
    if not value:
        return None
    value = _HINT_ALIASES.get(value, value)
    if value not in Ecosystem.KNOWN:
        choices = ", ".join(Ecosystem.KNOWN)
        raise ValidationError(f"Unsupported language '{hint}'. Choose one of: {choices}")
    return value


def detect(probe: ProbeResult, rules: Sequence[EcosystemRule] = ECOSYSTEM_RULES) -> str:
    """Return the first ecosystem whose manifests are present, or ``unknown``."""
    for rule in rules:
        if rule.matches(probe.found):
            return rule.ecosystem
    return Ecosystem.UNKNOWN


class LanguageClassifier:
    """Applies the rule precedence and reconciles a declared language."""

    def __init__(
        self,
        confirmer: Confirmer = decline,
        rules: Sequence[EcosystemRule] = ECOSYSTEM_RULES,
    ) -> None:
        self.confirmer = confirmer
        self.rules = tuple(rules)
        self.logger = get_logger("classifier")

    def classify(self, probe: ProbeResult, hint: Optional[str] = None) -> Classification:
        hinted = normalise_hint(hint)
        detected = detect(probe, self.rules)

        if detected == Ecosystem.UNKNOWN:
            if hinted is None:
                found = ", ".join(describe(probe)) or "none"
                raise DetectionError(
                    "Could not detect the project language: no dependency manifest "
                    f"matched (files found: {found}). Re-run with --lang.",
                    probe=probe,
                )
            self.logger.warning(
                "No manifest matched; using declared language '%s'", hinted
            )
            return Classification(
                ecosystem=hinted,
                provenance=Provenance.HINT,
                detected=detected,
                hint=hinted,
            )

        if hinted is None or hinted == detected:
            self.logger.info("Detected language: %s", detected)
            return Classification(
                ecosystem=detected,
                provenance=Provenance.DETECTED,
                detected=detected,
                hint=hinted,
            )

        self.logger.warning(
            "Declared language '%s' differs from detected '%s'", hinted, detected
        )
        if self.confirmer(detected, hinted):
            self.logger.info("Using declared language: %s", hinted)
            return Classification(
                ecosystem=hinted,
                provenance=Provenance.OVERRIDE,
                detected=detected,
                hint=hinted,
            )

        self.logger.info("Keeping detected language: %s", detected)
        return Classification(
            ecosystem=detected,
            provenance=Provenance.DETECTED,
            detected=detected,
            hint=hinted,
        )
