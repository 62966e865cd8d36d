"""
Interactive chat-card payloads for JobWatch webhook alerts.

The card layout is a contract with the receiving chat platform (Lark /
Feishu custom bots), so every tag and field name below must match the
platform's schema exactly::

    {"msg_type": "interactive",
     "card": {"config": {"wide_screen_mode": true},
              "header": {"template": "red",
                         "title": {"tag": "plain_text", "content": "[cat] title"}},
              "elements": [{"tag": "div", "fields": [...]}, ...,
                           {"tag": "hr"},
                           {"tag": "note", "elements": [{"tag": "lark_md", ...}]}]}}

Cards are assembled from typed models so a payload that does not follow
the schema cannot be built.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from jw_common.models import NotificationRecord


class MarkdownText(BaseModel):
    tag: Literal["lark_md"] = "lark_md"
    content: str


class PlainText(BaseModel):
    tag: Literal["plain_text"] = "plain_text"
    content: str


class CardField(BaseModel):
    """One ``**label:** value`` row inside a ``div`` element."""

    is_short: bool = True
    text: MarkdownText

    @classmethod
    def line(cls, label: str, value: str) -> CardField:
        return cls(text=MarkdownText(content=f"**{label}:** {value}"))


class DivElement(BaseModel):
    tag: Literal["div"] = "div"
    fields: list[CardField]


class DividerElement(BaseModel):
    tag: Literal["hr"] = "hr"


class NoteElement(BaseModel):
    tag: Literal["note"] = "note"
    elements: list[MarkdownText]


CardElement = Union[DivElement, DividerElement, NoteElement]


class CardHeader(BaseModel):
    template: str = "red"
    title: PlainText


class CardConfig(BaseModel):
    wide_screen_mode: bool = True


class Card(BaseModel):
    config: CardConfig = Field(default_factory=CardConfig)
    header: CardHeader
    elements: list[CardElement]


class InteractiveCard(BaseModel):
    """Top-level webhook body for an interactive card message."""

    msg_type: Literal["interactive"] = "interactive"
    card: Card

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready dict posted to the webhook."""
        return self.model_dump(mode="json")


def card_line_items(record: NotificationRecord) -> list[tuple[str, str]]:
    """Return the ordered ``(label, value)`` rows shown for *record*."""
    items = [
        ("Job Name", record.job_name),
        ("Status", record.status),
        ("Start Time", record.start_time),
        ("End Time", record.end_time),
        ("Duration", record.duration_text),
        ("Link", record.link or "-"),
    ]
    if record.restart is not None:
        items.append(("Restart", f"{record.restart.index}/{record.restart.total}"))
    return items


def build_alert_card(
    record: NotificationRecord,
    *,
    category: str,
    template: str = "red",
) -> InteractiveCard:
    """Build the interactive card announcing *record*.

    Args:
        record: Notification content.
        category: Tag shown in brackets before the title.
        template: Header accent color.
    """
    elements: list[CardElement] = [
        DivElement(fields=[CardField.line(label, value)])
        for label, value in card_line_items(record)
    ]
    elements.append(DividerElement())
    elements.append(
        NoteElement(
            elements=[MarkdownText(content=f"Sent by {category} at {record.alert_time}")],
        ),
    )
    return InteractiveCard(
        card=Card(
            header=CardHeader(
                template=template,
                title=PlainText(content=f"[{category}] {record.title}"),
            ),
            elements=elements,
        ),
    )
