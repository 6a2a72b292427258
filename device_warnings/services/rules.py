# device_warnings/services/rules.py
"""
Rule set resolution and per-observation rule evaluation.

Rule sets are owned by the device configuration store. They arrive either
with the observation itself or from the resolver, which holds rule sets
per device and per device type (optionally loaded from a JSON file).
"""
import json
import logging
import string
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from device_warnings.core.exceptions import RuleConfigurationError, InvalidMeasurementError
from device_warnings.schemas.warning import RuleDefinition, RuleResult, WarningConfig
from . import conditions

logger = logging.getLogger(__name__)

MESSAGE_PLACEHOLDERS = {"field", "value", "threshold", "device_name", "warning_kind"}


def parse_warning_config(raw: Optional[Dict[str, Any]], source: str = "warning_config") -> List[RuleDefinition]:
    """
    Parse a warning config document into rule definitions.

    Rules that fail validation are logged and dropped; the remaining rules
    are returned in document order. A disabled or malformed config yields
    no rules.
    """
    if not raw:
        return []
    try:
        if isinstance(raw, str):
            document = WarningConfig.model_validate_json(raw)
        else:
            document = WarningConfig.model_validate(raw)
    except ValidationError as e:
        logger.error("Ignoring malformed %s: %s", source, e)
        return []
    if not document.enabled:
        return []

    rules = []
    for index, rule in enumerate(document.rules or []):
        try:
            rules.append(RuleDefinition.model_validate(rule))
        except ValidationError as e:
            logger.error("Skipping invalid rule #%d in %s: %s", index, source, e)
    return rules


class RuleSetResolver:
    """
    Returns the ordered rules to evaluate for a device.

    Lookup order: rules registered for the device id, then rules registered
    for the device type, then nothing.
    """

    def __init__(self):
        self._by_device: Dict[str, List[RuleDefinition]] = {}
        self._by_device_type: Dict[str, List[RuleDefinition]] = {}

    def register_device(self, device_id: str, rules: List[RuleDefinition]) -> None:
        self._by_device[device_id] = list(rules)

    def register_device_type(self, device_type: str, rules: List[RuleDefinition]) -> None:
        self._by_device_type[device_type] = list(rules)

    def resolve(self, device_id: str, device_type: Optional[str] = None) -> List[RuleDefinition]:
        if device_id in self._by_device:
            return list(self._by_device[device_id])
        if device_type and device_type in self._by_device_type:
            return list(self._by_device_type[device_type])
        return []

    def load_file(self, path) -> None:
        """
        Load rule sets from a JSON file shaped like
        {"devices": {id: config}, "device_types": {type: config}}.
        """
        document = json.loads(Path(path).read_text(encoding="utf-8"))
        for device_id, config in (document.get("devices") or {}).items():
            self.register_device(device_id, parse_warning_config(config, f"device {device_id}"))
        for device_type, config in (document.get("device_types") or {}).items():
            self.register_device_type(device_type, parse_warning_config(config, f"device type {device_type}"))
        logger.info(
            "Loaded warning rules from %s (%d devices, %d device types)",
            path, len(self._by_device), len(self._by_device_type),
        )


def render_message(rule: RuleDefinition, value, threshold, device_name: Optional[str]) -> str:
    """Fill a rule's message template."""
    template = rule.message or "{warning_kind}: {field} = {value}"
    names = {name for _, name, _, _ in string.Formatter().parse(template) if name}
    unknown = names - MESSAGE_PLACEHOLDERS
    if unknown:
        raise RuleConfigurationError(
            f"Unknown placeholder {sorted(unknown)[0]!r} in message template", template
        )
    try:
        return template.format(
            field=rule.field,
            value=value,
            threshold=threshold,
            device_name=device_name or "",
            warning_kind=rule.warning_kind,
        )
    except (IndexError, KeyError, ValueError) as e:
        raise RuleConfigurationError(f"Cannot render message template: {e}", template)


def evaluate_rules(
    rules: List[RuleDefinition],
    data: Dict[str, Any],
    device_id: str,
    device_name: Optional[str] = None,
) -> Tuple[List[RuleResult], int]:
    """
    Judge every rule against the observation's field values.

    A rule whose field is missing yields no result. A rule that cannot be
    evaluated (bad expression, bad template, non-comparable value) is
    logged and skipped without affecting the other rules.

    Returns:
        (results in rule order, number of skipped rules)
    """
    results = []
    skipped = 0
    for rule in rules:
        if rule.field not in data or data[rule.field] is None:
            continue
        value = data[rule.field]
        try:
            violated = conditions.evaluate(rule.condition, value)
            threshold = conditions.threshold_of(rule.condition)
            message = render_message(rule, value, threshold, device_name)
            result = RuleResult(
                warning_kind=rule.warning_kind,
                severity=rule.severity,
                measured_value=value,
                threshold_value=threshold,
                message=message,
                violated=violated,
            )
        except RuleConfigurationError as e:
            skipped += 1
            logger.error(
                "Skipping rule for device %s kind %s (condition %r): %s",
                device_id, rule.warning_kind, rule.condition, e,
            )
            continue
        except (InvalidMeasurementError, ValidationError) as e:
            skipped += 1
            logger.error(
                "Skipping rule for device %s kind %s: field %s: %s",
                device_id, rule.warning_kind, rule.field, e,
            )
            continue

        results.append(result)
    return results, skipped
