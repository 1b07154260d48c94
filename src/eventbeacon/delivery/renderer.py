"""
Notification text rendering.

render() is a pure, deterministic function of (type, event, locale). The
per-setting message build is also pure: every delivery setting gets a freshly
built OutboundMessage, so a role mention added for one setting can never leak
into another.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from eventbeacon.contracts.events import Event, EventType

DEFAULT_LOCALE = "en"

# Event type to emoji/icon mapping
EVENT_TYPE_ICONS = {
    EventType.HELLTIDE: "\U0001f525",  # fire
    EventType.WORLD_BOSS: "\U0001f479",  # ogre
    EventType.LEGION: "⚔️",  # crossed swords
}

# Title templates per locale. Placeholders: {when} (Discord relative time),
# {zone}, {boss}.
TITLES: dict[str, dict[EventType, str]] = {
    "en": {
        EventType.HELLTIDE: "Helltide has started{zone} - ends {when}",
        EventType.WORLD_BOSS: "World Boss {boss} spawns {when}{zone}",
        EventType.LEGION: "Legion event starts {when}{zone}",
    },
    "fr": {
        EventType.HELLTIDE: "La Marée infernale a commencé{zone} - fin {when}",
        EventType.WORLD_BOSS: "Le boss mondial {boss} apparaît {when}{zone}",
        EventType.LEGION: "L'événement de légion commence {when}{zone}",
    },
    "de": {
        EventType.HELLTIDE: "Die Höllenflut hat begonnen{zone} - endet {when}",
        EventType.WORLD_BOSS: "Weltboss {boss} erscheint {when}{zone}",
        EventType.LEGION: "Legionsereignis beginnt {when}{zone}",
    },
    "es": {
        EventType.HELLTIDE: "La Marea infernal ha comenzado{zone} - termina {when}",
        EventType.WORLD_BOSS: "El jefe del mundo {boss} aparece {when}{zone}",
        EventType.LEGION: "El evento de legión empieza {when}{zone}",
    },
    "it": {
        EventType.HELLTIDE: "La Marea Infernale è iniziata{zone} - termina {when}",
        EventType.WORLD_BOSS: "Il boss del mondo {boss} appare {when}{zone}",
        EventType.LEGION: "L'evento legione inizia {when}{zone}",
    },
    "pl": {
        EventType.HELLTIDE: "Piekielny przypływ się rozpoczął{zone} - koniec {when}",
        EventType.WORLD_BOSS: "Światowy boss {boss} pojawi się {when}{zone}",
        EventType.LEGION: "Wydarzenie legionu zaczyna się {when}{zone}",
    },
    "br": {
        EventType.HELLTIDE: "A Maré Infernal começou{zone} - termina {when}",
        EventType.WORLD_BOSS: "O Chefe Mundial {boss} surge {when}{zone}",
        EventType.LEGION: "O evento da Legião começa {when}{zone}",
    },
    "jp": {
        EventType.HELLTIDE: "ヘルタイドが始まりました{zone} - 終了 {when}",
        EventType.WORLD_BOSS: "ワールドボス {boss} が出現 {when}{zone}",
        EventType.LEGION: "レギオンイベント開始 {when}{zone}",
    },
}

REFRESH_TITLES: dict[str, str] = {
    "en": "Helltide chests have refreshed{zone} - ends {when}",
    "fr": "Les coffres de la Marée infernale sont réapparus{zone} - fin {when}",
    "de": "Die Höllenflut-Truhen wurden erneuert{zone} - endet {when}",
    "es": "Los cofres de la Marea infernal se han renovado{zone} - termina {when}",
    "it": "I forzieri della Marea Infernale sono stati rinnovati{zone} - termina {when}",
    "pl": "Skrzynie piekielnego przypływu odnowiły się{zone} - koniec {when}",
    "br": "Os baús da Maré Infernal foram renovados{zone} - termina {when}",
    "jp": "ヘルタイドの宝箱が更新されました{zone} - 終了 {when}",
}

HELLTIDE_DURATION_S = 3600

SUPPORTED_LOCALES = frozenset(TITLES)


def _when(event: Event) -> str:
    # Helltide titles announce the end, other kinds their start
    ts = event.timestamp
    if event.type is EventType.HELLTIDE:
        ts += HELLTIDE_DURATION_S
    return f"<t:{ts}:R>"


def _zone(payload: dict[str, Any]) -> str:
    parts = [str(payload[k]) for k in ("zone", "territory") if payload.get(k)]
    return f" ({', '.join(parts)})" if parts else ""


def render(event_type: EventType, event: Event, locale: str, *, refresh: bool = False) -> str:
    """Render the notification title for an event in a locale.

    Unknown locales fall back to English.
    """
    if locale not in SUPPORTED_LOCALES:
        locale = DEFAULT_LOCALE

    if refresh and event_type is EventType.HELLTIDE:
        template = REFRESH_TITLES[locale]
    else:
        template = TITLES[locale][event_type]

    boss = event.payload.get("name") or event.payload.get("expectedName") or ""
    title = template.format(when=_when(event), zone=_zone(event.payload), boss=boss)
    # Collapse the double space left by an empty boss name
    title = " ".join(title.split())
    return f"{EVENT_TYPE_ICONS[event_type]} {title}"


Renderer = Callable[..., str]


class DefaultRenderer:
    """Callable wrapper around render(), the injectable default."""

    def __call__(
        self, event_type: EventType, event: Event, locale: str, *, refresh: bool = False
    ) -> str:
        return render(event_type, event, locale, refresh=refresh)


@dataclass(frozen=True)
class OutboundMessage:
    """Message content for one delivery setting."""

    content: str
    allowed_mentions: dict[str, list[str]] | None = field(default=None)

    def to_payload(self) -> dict[str, Any]:
        """Discord message JSON body."""
        payload: dict[str, Any] = {"content": self.content}
        if self.allowed_mentions is not None:
            payload["allowed_mentions"] = {"parse": [], **self.allowed_mentions}
        return payload


def build_message(title: str, role_id: str | None = None) -> OutboundMessage:
    """Build the message for one setting, mentioning only its role if any."""
    if role_id:
        return OutboundMessage(
            content=f"{title} - <@&{role_id}>",
            allowed_mentions={"roles": [role_id]},
        )
    return OutboundMessage(content=title)
