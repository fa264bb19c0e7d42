from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from errors import ElementNotFound
from handles import WidgetHandle
from records import (
    EMPTY_STATE_PATTERN,
    CanonicalRecord,
    FieldRule,
    RecordSet,
    RenderStatus,
    apply_rule,
    collapse_whitespace,
    sentinel_for,
)

logger = logging.getLogger(__name__)

DEFAULT_ROW_CAP = 50

ATTRIBUTE_DEFAULTS = {
    FieldRule.BOOLEAN_FROM_ATTRIBUTE: "disabled",
    FieldRule.CLASS_VARIANT: "class",
}


@dataclass(frozen=True)
class FieldSpec:
    """One field of a schema. ``selector=None`` reads the widget (or row) itself."""

    name: str
    selector: str | None = None
    rule: FieldRule = FieldRule.TRIMMED_TEXT
    attribute: str | None = None
    variants: Mapping[str, Enum] | None = None
    default: Enum | None = None


@dataclass(frozen=True)
class Schema:
    fields: tuple[FieldSpec, ...]
    key_field: str | None = None
    row_selector: str | None = None
    max_rows: int | None = DEFAULT_ROW_CAP
    empty_state_selector: str | None = None
    empty_state_pattern: re.Pattern = EMPTY_STATE_PATTERN

    @property
    def key(self) -> str:
        return self.key_field or self.fields[0].name

    @property
    def rules(self) -> dict[str, FieldRule]:
        return {f.name: f.rule for f in self.fields}

    def uncapped(self) -> "Schema":
        return dataclasses.replace(self, max_rows=None)

    def capped(self, max_rows: int) -> "Schema":
        return dataclasses.replace(self, max_rows=max_rows)


async def read_field(item: WidgetHandle, field: FieldSpec) -> Any:
    target = item.locate(field.selector) if field.selector else item
    if await target.count() == 0:
        logger.debug("field %s missing under %s", field.name, item.description)
        return sentinel_for(field.rule)
    attribute = field.attribute or ATTRIBUTE_DEFAULTS.get(field.rule)
    try:
        if attribute:
            raw = await target.read_attribute(attribute)
        else:
            raw = await target.read_text()
    except ElementNotFound as e:
        logger.warning("field %s unreadable, using sentinel: %s", field.name, e)
        return sentinel_for(field.rule)
    return apply_rule(field.rule, raw, field.variants, field.default)


async def _read_record(item: WidgetHandle, schema: Schema) -> CanonicalRecord:
    values = {}
    for field in schema.fields:
        values[field.name] = await read_field(item, field)
    return CanonicalRecord(values)


async def extract_record(handle: WidgetHandle, schema: Schema) -> CanonicalRecord:
    if await handle.count() == 0:
        raise ElementNotFound(f"No element for {handle.description}", target=handle.description)
    return await _read_record(handle.nth(0), schema)


async def empty_state_status(handle: WidgetHandle, schema: Schema) -> RenderStatus:
    """EMPTY when the widget shows an explicit no-results message, NOT_LOADED otherwise."""
    if schema.empty_state_selector:
        marker = handle.locate(schema.empty_state_selector)
        if await marker.count() == 0:
            return RenderStatus.NOT_LOADED
        text = collapse_whitespace(await marker.read_text())
        if await marker.is_visible() and (not text or schema.empty_state_pattern.search(text)):
            return RenderStatus.EMPTY
        return RenderStatus.NOT_LOADED
    if await handle.count() == 0:
        return RenderStatus.NOT_LOADED
    text = collapse_whitespace(await handle.read_text())
    return RenderStatus.EMPTY if schema.empty_state_pattern.search(text) else RenderStatus.NOT_LOADED


async def extract_rows(handle: WidgetHandle, schema: Schema) -> RecordSet:
    if not schema.row_selector:
        raise ValueError("extract_rows needs a schema with row_selector")
    rows = handle.locate(schema.row_selector)
    total = await rows.count()
    limit = total if schema.max_rows is None else min(total, schema.max_rows)
    records = []
    for index in range(limit):
        records.append(await _read_record(rows.nth(index), schema))
    if total:
        status = RenderStatus.POPULATED
    else:
        status = await empty_state_status(handle, schema)
    if limit < total:
        logger.info("%s: read %d of %d rows", handle.description, limit, total)
    return RecordSet(records, schema.key, status=status, truncated=limit < total)


async def extract(handle: WidgetHandle, schema: Schema) -> CanonicalRecord | RecordSet:
    """Read a widget into a CanonicalRecord, or a RecordSet when the schema names rows."""
    if schema.row_selector:
        return await extract_rows(handle, schema)
    return await extract_record(handle, schema)


async def extract_pairs(
    handle: WidgetHandle,
    item_selector: str,
    label_selector: str,
    value_selector: str,
    rule: FieldRule = FieldRule.INTEGER,
) -> RecordSet:
    """Label/value cards (summary tiles, count cards) keyed by ``label``."""
    schema = Schema(
        fields=(
            FieldSpec("label", label_selector, FieldRule.TRIMMED_TEXT),
            FieldSpec("value", value_selector, rule),
        ),
        key_field="label",
        row_selector=item_selector,
        max_rows=None,
    )
    return await extract_rows(handle, schema)


async def extract_texts(handle: WidgetHandle, selector: str, max_items: int | None = None) -> list[str]:
    items = handle.locate(selector)
    total = await items.count()
    limit = total if max_items is None else min(total, max_items)
    texts = []
    for index in range(limit):
        texts.append(collapse_whitespace(await items.nth(index).read_text()))
    return texts
