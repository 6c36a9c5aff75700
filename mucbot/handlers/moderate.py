import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger

from ..clients.xmpp.stanza import MessageStanza
from ..handler.base import Handler
from ..room.events import RoomEvent
from ..room.user import RoomUser
from ..shared.exceptions import HandlerOptionsError

if TYPE_CHECKING:
    from ..room.room import Room

__all__ = ("ModerateHandler", "ModerationRule")

_MODIFIER_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}


@dataclass(frozen=True, slots=True)
class ModerationRule:
    name: str
    regexp: re.Pattern[str]
    reason: str | None = None


def _compile(pattern: str, modifiers: str = "i") -> re.Pattern[str]:
    flags = 0
    for modifier in modifiers:
        if modifier not in _MODIFIER_FLAGS:
            raise HandlerOptionsError(f"Invalid regexp modifier: {modifier}")
        flags |= _MODIFIER_FLAGS[modifier]
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise HandlerOptionsError(f"Invalid regexp {pattern!r}: {e}") from e


def _parse_rule(rule: Any) -> ModerationRule:
    if isinstance(rule, str):
        return ModerationRule(name=rule, regexp=_compile(rule))
    if not isinstance(rule, dict):
        raise HandlerOptionsError(f"Invalid rule value: {rule!r}")
    name = rule.get("name")
    pattern = rule.get("pattern", rule.get("regexp"))
    if not isinstance(name, str) or not name or not isinstance(pattern, str):
        raise HandlerOptionsError(f"Invalid rule value: {rule!r}")
    modifiers = rule.get("modifiers")
    reason = rule.get("reason")
    return ModerationRule(
        name=name,
        regexp=_compile(pattern, modifiers if isinstance(modifiers, str) else "i"),
        reason=reason if isinstance(reason, str) else None,
    )


class ModerateHandler(Handler):
    """Retracts messages matching one of the configured rules.

    Rules are checked in order and the first match wins. Messages from
    moderators are left alone unless ``apply_to_moderators`` is set.
    """

    description = "Moderates messages matching patterns"

    def __init__(self, handler_id: str, room: "Room", options: Any = None):
        self.rules: list[ModerationRule] = []
        self.apply_to_moderators = False
        super().__init__(handler_id, room, options)

    def load_options(self, options: Any) -> None:
        rules = self._option(options, "rules")
        if isinstance(rules, (str, dict)):
            rules = [rules]
        # parse before assigning anything: a failed reload keeps every option
        parsed = None
        if isinstance(rules, list):
            parsed = [_parse_rule(rule) for rule in rules]
        apply = self._option(options, "apply_to_moderators", "applyToModerators")
        if isinstance(apply, bool):
            self.apply_to_moderators = apply
        if parsed is not None:
            self.rules = parsed

    def start(self) -> None:
        super().start()
        self._subscribe(RoomEvent.MESSAGE, self._on_room_message)

    def match(self, body: str) -> ModerationRule | None:
        for rule in self.rules:
            if rule.regexp.search(body):
                return rule
        return None

    def _on_room_message(self, stanza: MessageStanza, user: RoomUser) -> None:
        body = stanza.body()
        if not body:
            return
        if (rule := self.match(body)) is None:
            return
        logger.debug(f"Handler {self.id}: message matches rule {rule.name}")
        if not self.apply_to_moderators and user.is_moderator():
            logger.debug(
                f"Handler {self.id}: ignoring rule {rule.name}, {user.nick} is moderator"
            )
            return
        self._fire(self.room.moderate_message(stanza, rule.reason), "moderate message")
