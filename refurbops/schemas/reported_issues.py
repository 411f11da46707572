"""
Typed inspection findings.

Older records store reported issues as a JSON string in one of two shapes:

- checklist: {"failedItems": ["[3] Keyboard: sticky keys", {"itemIndex": 4, "itemText": "..."}], "notes": "..."}
- legacy:    {"functional": "...", "cosmetic": "..."}

Anything else (including non-JSON text) is kept as plain text. Decoding happens
once, at the boundary, via `ReportedIssues.parse`; services only ever see the
typed record.
"""
import json
import re
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field

_CHECKLIST_ITEM = re.compile(r"^\[(\d+)\]\s*(.+?)(?::\s*(.+))?$")


class IssuesKind(str, Enum):
    CHECKLIST = "CHECKLIST"
    LEGACY = "LEGACY"
    TEXT = "TEXT"
    EMPTY = "EMPTY"


class FailedItem(BaseModel):
    index: Optional[int] = None
    text: str
    notes: Optional[str] = None


class ReportedIssues(BaseModel):
    kind: IssuesKind = IssuesKind.EMPTY
    failed_items: List[FailedItem] = Field(default_factory=list)
    notes: Optional[str] = None
    functional: Optional[str] = None
    cosmetic: Optional[str] = None
    raw: Optional[str] = None

    @property
    def has_issues(self) -> bool:
        """Functional problems that need a repair engineer (cosmetic-only legacy records do not)."""
        if self.kind == IssuesKind.LEGACY:
            return bool(self.functional and self.functional.strip())
        return bool(self.failed_items)

    @classmethod
    def parse(cls, value: Any) -> "ReportedIssues":
        """Decode a stored/submitted value of any historical shape."""
        if value is None or value == "" or value == {}:
            return cls()
        if isinstance(value, ReportedIssues):
            return value
        if isinstance(value, dict) and ("kind" in value or "failed_items" in value):
            data = dict(value)
            if "kind" not in data:
                data["kind"] = IssuesKind.CHECKLIST if data.get("failed_items") else IssuesKind.EMPTY
            return cls.model_validate(data)

        raw = value if isinstance(value, str) else None
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return cls(kind=IssuesKind.TEXT, failed_items=[FailedItem(text=value)], raw=value)

        if not isinstance(value, dict):
            return cls(kind=IssuesKind.TEXT, raw=raw if raw is not None else str(value))

        if isinstance(value.get("failedItems"), list):
            return cls(
                kind=IssuesKind.CHECKLIST,
                failed_items=[_parse_failed_item(item) for item in value["failedItems"]],
                notes=value.get("notes"),
            )

        if "functional" in value or "cosmetic" in value:
            functional = value.get("functional") or None
            cosmetic = value.get("cosmetic") or None
            items = []
            if functional:
                items.append(FailedItem(text=f"Functional: {functional}"))
            if cosmetic:
                items.append(FailedItem(text=f"Cosmetic: {cosmetic}"))
            return cls(
                kind=IssuesKind.LEGACY,
                failed_items=items,
                functional=functional,
                cosmetic=cosmetic,
            )

        return cls(kind=IssuesKind.TEXT, raw=raw if raw is not None else json.dumps(value))

    def summary(self) -> str:
        if not self.failed_items:
            return self.raw or "No issues reported"
        return "; ".join(item.text for item in self.failed_items)


def _parse_failed_item(item: Any) -> FailedItem:
    if isinstance(item, str):
        match = _CHECKLIST_ITEM.match(item)
        if match:
            return FailedItem(
                index=int(match.group(1)),
                text=match.group(2).strip(),
                notes=match.group(3).strip() if match.group(3) else None,
            )
        return FailedItem(text=item)
    if isinstance(item, dict):
        return FailedItem(
            index=item.get("itemIndex", item.get("index")),
            text=item.get("itemText", item.get("text")) or "",
            notes=item.get("notes"),
        )
    return FailedItem(text=str(item))
