from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


# Encodings of the rupee sign seen in rendered cards, API text and exports.
# Longest first so that multi-byte mojibake is replaced before its fragments.
RUPEE_VARIANTS = [
    "Ã¢âÂ¹",
    "&#x20B9;",
    "&#x20b9;",
    "&#8377;",
    "â\u0082¹",
    "â¹",
    "Rs.",
    "Rs",
    "INR",
]
CANONICAL_RUPEE = "₹"

EMPTY_STATE_PATTERN = re.compile(r"no cases|no records|nothing found|no results|no matching", re.I)

_WS = re.compile(r"\s+")
_INT_RUN = re.compile(r"\d+(?:,\d+)*")
_NUMBER_TOKEN = re.compile(r"\d[\d,.]*")
_NUMERIC_TEXT = re.compile(r"^[-−]?\s*[₹]?\s*\d[\d,]*(\.\d+)?$")


class FieldRule(str, Enum):
    RAW_TEXT = "raw_text"
    TRIMMED_TEXT = "trimmed_text"
    INTEGER = "integer"
    CURRENCY_DECIMAL = "currency_decimal"
    BOOLEAN_FROM_ATTRIBUTE = "boolean_from_attribute"
    CLASS_VARIANT = "class_variant"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"


PRIORITY_CLASSES = {
    "priority--low": Priority.LOW,
    "priority--medium": Priority.MEDIUM,
    "priority--high": Priority.HIGH,
}


class RenderStatus(str, Enum):
    POPULATED = "populated"
    EMPTY = "empty"
    NOT_LOADED = "not_loaded"


def collapse_whitespace(text: str | None) -> str:
    if text is None:
        return ""
    return _WS.sub(" ", str(text)).strip()


def normalize_currency_symbols(text: str) -> str:
    for variant in RUPEE_VARIANTS:
        text = text.replace(variant, CANONICAL_RUPEE)
    return text


def parse_integer(text: Any) -> int:
    """First run of digits in the text (grouping commas allowed), 0 when there is none."""
    if isinstance(text, bool):
        return int(text)
    if isinstance(text, int):
        return text
    if text is None:
        return 0
    match = _INT_RUN.search(str(text))
    if not match:
        return 0
    return int(match.group(0).replace(",", ""))


def parse_currency(text: Any) -> Decimal | None:
    """Parse a rendered amount such as "₹ 15,00,000.00" into a Decimal.

    Known encodings of the currency sign are normalized first so that entity
    digits (``&#x20B9;``) never leak into the number. Returns None when the text
    carries no digits.
    """
    if text is None or isinstance(text, bool):
        return None
    if isinstance(text, (int, Decimal)):
        return Decimal(text)
    if isinstance(text, float):
        return Decimal(str(text))
    normalized = normalize_currency_symbols(str(text))
    match = _NUMBER_TOKEN.search(normalized)
    if not match:
        return None
    prefix = normalized[: match.start()].replace(CANONICAL_RUPEE, "").strip()
    negative = prefix.endswith("-") or prefix.endswith("−")
    digits = re.sub(r"[^0-9.]", "", match.group(0))
    if digits.count(".") > 1:
        head, _, tail = digits.rpartition(".")
        digits = head.replace(".", "") + "." + tail
    try:
        amount = Decimal(digits)
    except InvalidOperation:
        return None
    return -amount if negative else amount


def attribute_flag(value: str | None) -> bool:
    """True when a boolean HTML attribute is present. Its value does not matter."""
    return value is not None


def classify_variant(class_attr: str | None, variants: Mapping[str, Enum], default: Enum) -> Enum:
    tokens = (class_attr or "").split()
    for token in tokens:
        if token in variants:
            return variants[token]
    return default


def classify_priority(class_attr: str | None) -> Priority:
    return classify_variant(class_attr, PRIORITY_CLASSES, Priority.UNKNOWN)  # type: ignore[return-value]


def sentinel_for(rule: FieldRule) -> Any:
    if rule == FieldRule.INTEGER:
        return 0
    if rule == FieldRule.BOOLEAN_FROM_ATTRIBUTE:
        return False
    if rule in (FieldRule.CURRENCY_DECIMAL, FieldRule.CLASS_VARIANT):
        return None
    return ""


def apply_rule(rule: FieldRule, raw: str | None, variants: Mapping[str, Enum] | None = None, default: Enum | None = None) -> Any:
    if rule == FieldRule.RAW_TEXT:
        return raw if raw is not None else ""
    if rule == FieldRule.TRIMMED_TEXT:
        return collapse_whitespace(raw)
    if rule == FieldRule.INTEGER:
        return parse_integer(raw)
    if rule == FieldRule.CURRENCY_DECIMAL:
        return parse_currency(raw)
    if rule == FieldRule.BOOLEAN_FROM_ATTRIBUTE:
        return attribute_flag(raw)
    if rule == FieldRule.CLASS_VARIANT:
        if variants is None:
            return classify_priority(raw)
        return classify_variant(raw, variants, default)
    raise ValueError(f"Unknown field rule: {rule}")


def as_number(value: Any) -> Decimal | None:
    """Numeric view of a value for comparison, or None when it is not numeric."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        return parse_currency(value)
    if isinstance(value, str):
        text = normalize_currency_symbols(collapse_whitespace(value))
        if not _NUMERIC_TEXT.match(text):
            return None
        return parse_currency(text)
    return None


def jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


class CanonicalRecord(Mapping):
    """Immutable, ordered field -> normalized value mapping."""

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any] | Iterable[tuple[str, Any]] = (), **extra: Any) -> None:
        items = dict(fields)
        items.update(extra)
        self._fields = items

    def __getitem__(self, name: str) -> Any:
        return self._fields[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"CanonicalRecord({self._fields!r})"

    def replace(self, **updates: Any) -> "CanonicalRecord":
        return CanonicalRecord(self._fields, **updates)

    def to_dict(self) -> dict:
        return {k: jsonable(v) for k, v in self._fields.items()}


def _label_key(value: Any) -> str:
    return collapse_whitespace(str(value)).lower()


class RecordSet(Sequence):
    """Records sharing a key field. Duplicate keys are kept and reported."""

    def __init__(
        self,
        records: Iterable[CanonicalRecord],
        key_field: str,
        *,
        status: RenderStatus | None = None,
        truncated: bool = False,
    ) -> None:
        self.records: tuple[CanonicalRecord, ...] = tuple(records)
        self.key_field = key_field
        self.status = status or (RenderStatus.POPULATED if self.records else RenderStatus.EMPTY)
        self.truncated = truncated
        self._index: dict[Any, CanonicalRecord] = {}
        self.duplicate_keys: list[Any] = []
        for record in self.records:
            key = record.get(key_field)
            if key in self._index:
                if key not in self.duplicate_keys:
                    self.duplicate_keys.append(key)
                continue
            self._index[key] = record

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], key_field: str = "label", value_field: str = "value") -> "RecordSet":
        return cls((CanonicalRecord({key_field: k, value_field: v}) for k, v in mapping.items()), key_field)

    def __getitem__(self, index):
        return self.records[index]

    def __len__(self) -> int:
        return len(self.records)

    def __repr__(self) -> str:
        return f"RecordSet(key={self.key_field!r}, status={self.status.value}, records={list(self.records)!r})"

    def keys(self) -> list[Any]:
        return list(self._index)

    def has_key(self, key: Any) -> bool:
        return key in self._index

    def get(self, key: Any) -> CanonicalRecord | None:
        return self._index.get(key)

    @property
    def is_empty_state(self) -> bool:
        return self.status == RenderStatus.EMPTY

    def values(self, field: str) -> dict[Any, Any]:
        return {key: record.get(field) for key, record in self._index.items()}

    def relabel(self, mapping: Mapping[str, str]) -> "RecordSet":
        """Rename keys through ``mapping``, matching labels case- and whitespace-insensitively."""
        lookup = {_label_key(k): v for k, v in mapping.items()}
        renamed = []
        for record in self.records:
            key = record.get(self.key_field)
            target = lookup.get(_label_key(key)) if key is not None else None
            renamed.append(record.replace(**{self.key_field: target}) if target is not None else record)
        return RecordSet(renamed, self.key_field, status=self.status, truncated=self.truncated)

    def to_list(self) -> list[dict]:
        return [record.to_dict() for record in self.records]


def format_compact_inr(value: Any) -> str:
    """Render an amount the way dashboard cards do: lakhs above 1,00,000 ("₹ 1.5L")."""
    amount = parse_currency(value)
    if amount is None:
        return "—"
    if amount >= 100000:
        return f"{CANONICAL_RUPEE} {amount / 100000:.1f}L"
    if amount == amount.to_integral_value():
        return f"{CANONICAL_RUPEE} {int(amount):,}"
    return f"{CANONICAL_RUPEE} " + f"{amount:,.3f}".rstrip("0").rstrip(".")
