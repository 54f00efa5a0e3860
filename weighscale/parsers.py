"""
Response parsers: turn a scale's text response into a WeightReading.

A parse function takes the decoded response and returns a reading, or None
when the text is not a weight. Vendor command sets pair their commands with
one of these (or their own) functions.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Pattern, Union

from .models import WeightReading, WeightUnit

# "W: 12.340 kg", "W:-0.5g", "w: 3 lb", "W: .5 kg"
WEIGHT_LINE_PATTERN = re.compile(
    r"W:\s*(?P<value>[-+]?(?:\d+(?:\.\d*)?|\.\d+))\s*(?P<unit>kg|mg|g|lb|oz|t)\b",
    re.IGNORECASE,
)


def _to_decimal(text: str) -> Optional[Decimal]:
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def parse_weight_response(response: str) -> Optional[WeightReading]:
    """
    Parse the generic 'W: <value> <unit>' response format.

    A response that is just a number is read as grams.

    Args:
        response: Decoded response text

    Returns:
        WeightReading, or None if the response is not a weight
    """
    if not response:
        return None

    match = WEIGHT_LINE_PATTERN.search(response)
    if match:
        value = _to_decimal(match.group("value"))
        if value is None:
            return None
        unit = WeightUnit.from_symbol(match.group("unit"))
        return WeightReading(value, unit, metadata={"raw": response.strip()})

    value = _to_decimal(response.strip())
    if value is not None and value.is_finite():
        return WeightReading(value, WeightUnit.GRAM, metadata={"raw": response.strip()})
    return None


def make_regex_parser(
    pattern: Union[str, Pattern[str]],
    default_unit: WeightUnit = WeightUnit.GRAM,
    unstable_marker: Optional[str] = None,
) -> Callable[[str], Optional[WeightReading]]:
    """
    Build a parse function from a regular expression.

    The pattern must have a 'value' group and may have a 'unit' group. When
    unstable_marker is given, a response containing it is flagged unstable
    (many scales prefix unstable readings with e.g. 'US' or '?').

    Args:
        pattern: Regex (string or compiled) searched in the response
        default_unit: Unit used when the pattern has no 'unit' group match
        unstable_marker: Substring that marks an unstable reading

    Returns:
        A function suitable as a SerialScaleBackend parse function
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    if "value" not in regex.groupindex:
        raise ValueError("Parser pattern needs a named group 'value'")

    def parse(response: str) -> Optional[WeightReading]:
        match = regex.search(response or "")
        if not match:
            return None
        value = _to_decimal(match.group("value").replace(" ", ""))
        if value is None:
            return None

        unit = default_unit
        if "unit" in regex.groupindex and match.group("unit"):
            try:
                unit = WeightUnit.from_symbol(match.group("unit"))
            except ValueError:
                return None

        stable = not (unstable_marker and unstable_marker in response)
        return WeightReading(value, unit, is_stable=stable, metadata={"raw": response.strip()})

    return parse
