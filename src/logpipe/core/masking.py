"""
Redaction middleware for sensitive field masking.

Masks values in a record's ``meta`` and ``bound_context`` before any sink
sees them. The record is never modified in place: a masked copy is
forwarded.
"""

from typing import Any, Iterable, Mapping, Optional, Set

import structlog

from ..models.record import LogRecord
from .chain import Proceed

logger = structlog.get_logger(__name__)

SENSITIVE_PATTERNS = (
    "card", "credit", "ssn", "social", "phone", "email",
    "pass", "pwd", "key", "token", "auth", "secret",
    "private", "confidential", "sensitive",
)

_ROOT_PREFIXES = ("meta.", "context.", "bound_context.")


class MaskingEngine:
    """
    Handles sensitive data masking with configurable rules.

    Features:
    - Bare key names (``"password"``) match at any depth, case-insensitively
    - Dotted paths (``"user.token"``) match one location relative to the
      payload root; a ``meta.``/``context.`` prefix is accepted and ignored
    - Partial masking (keep prefixes/suffixes, email masking)
    - Optional heuristic detection of sensitive-looking keys
    """

    def __init__(
        self,
        paths: Iterable[str] = (),
        partial_rules: Optional[Mapping[str, Mapping[str, Any]]] = None,
        heuristics: bool = False,
    ) -> None:
        self.keys: Set[str] = set()
        self.paths: Set[str] = set()
        for raw in paths:
            path = raw.strip().lower()
            for prefix in _ROOT_PREFIXES:
                if path.startswith(prefix):
                    path = path[len(prefix):]
                    break
            if not path:
                continue
            if "." in path:
                self.paths.add(path)
            else:
                self.keys.add(path)

        self.partial_rules = {k.lower(): dict(v) for k, v in (partial_rules or {}).items()}
        self.heuristics = heuristics

        logger.debug(
            "Masking engine initialized",
            keys=len(self.keys),
            paths=len(self.paths),
            partial_rules=len(self.partial_rules),
            heuristics=heuristics,
        )

    def mask_record(self, record: LogRecord) -> LogRecord:
        """Masked copy of ``record``."""
        return record.model_copy(
            update={
                "meta": self._deep_copy_and_mask(record.meta),
                "bound_context": self._deep_copy_and_mask(record.bound_context),
            }
        )

    def _deep_copy_and_mask(self, obj: Any, path: str = "") -> Any:
        """
        Recursively traverse and mask sensitive data in nested structures.

        Args:
            obj: Object to traverse (dict, list, or primitive)
            path: Current lowercase dotted path of ``obj``

        Returns:
            Masked copy of the object
        """
        if isinstance(obj, dict):
            masked_dict = {}
            for key, value in obj.items():
                current_path = f"{path}.{key}".lower() if path else str(key).lower()

                if self._should_mask_key(str(key), current_path):
                    masked_dict[key] = self._mask_value(str(key), value)
                    logger.debug("Masked sensitive field", path=current_path)
                else:
                    masked_dict[key] = self._deep_copy_and_mask(value, current_path)

            return masked_dict

        elif isinstance(obj, (list, tuple)):
            return [self._deep_copy_and_mask(item, path) for item in obj]

        else:
            return obj

    def _should_mask_key(self, key: str, path: str) -> bool:
        key_lower = key.lower()

        if key_lower in self.keys or path in self.paths:
            return True

        if self.heuristics:
            for pattern in SENSITIVE_PATTERNS:
                if pattern in key_lower:
                    return True

        return False

    def _mask_value(self, key: str, value: Any) -> str:
        """
        Apply appropriate masking to a sensitive value.

        Exact partial-rule matches win over substring matches; anything
        without a rule is fully masked.
        """
        str_value = str(value) if value is not None else ""
        key_lower = key.lower()

        rule = self.partial_rules.get(key_lower)
        if rule is None:
            for rule_key, rule_config in self.partial_rules.items():
                if rule_key in key_lower:
                    rule = rule_config
                    break

        if rule is not None:
            return self._apply_partial_masking(str_value, rule)
        return self._apply_full_masking(str_value)

    def _apply_partial_masking(self, value: str, rule_config: Mapping[str, Any]) -> str:
        if not value:
            return "****"

        if rule_config.get("mask_email"):
            return self._mask_email(value)

        if "keep_prefix" in rule_config:
            prefix_len = int(rule_config["keep_prefix"])
            if len(value) <= prefix_len:
                return "****"
            return f"{value[:prefix_len]}****"

        if "keep_suffix" in rule_config:
            suffix_len = int(rule_config["keep_suffix"])
            if len(value) <= suffix_len:
                return "****"
            return f"****{value[-suffix_len:]}"

        return self._apply_full_masking(value)

    def _apply_full_masking(self, value: str) -> str:
        # Long values keep a length hint.
        if len(value) <= 16:
            return "****"
        return f"****[{len(value)} chars]"

    def _mask_email(self, email: str) -> str:
        """
        Mask email addresses in format: e*****e@email.com for example@email.com
        """
        if "@" not in email:
            return "****"

        local_part, domain = email.split("@", 1)
        if len(local_part) <= 2:
            masked_local = "****"
        else:
            middle_stars = "*" * min(5, len(local_part) - 2)
            masked_local = f"{local_part[0]}{middle_stars}{local_part[-1]}"

        return f"{masked_local}@{domain}"


class RedactionStage:
    """Middleware stage forwarding a masked copy of each record."""

    name = "redaction"

    def __init__(self, engine: MaskingEngine) -> None:
        self.engine = engine

    def __call__(self, record: LogRecord, proceed: Proceed) -> None:
        proceed(self.engine.mask_record(record))


def redaction_middleware(
    paths: Iterable[str],
    partial_rules: Optional[Mapping[str, Mapping[str, Any]]] = None,
    heuristics: bool = False,
) -> RedactionStage:
    """Create a redaction stage masking ``paths`` in meta and bound context."""
    return RedactionStage(MaskingEngine(paths, partial_rules=partial_rules, heuristics=heuristics))
