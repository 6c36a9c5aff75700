import pytest

from mucbot.handlers.moderate import ModerateHandler
from mucbot.shared.exceptions import HandlerOptionsError

from .helpers import drain, message, occupant, online_room, presence

RULES = [
    {"name": "spam", "pattern": "buy now", "reason": "No spam"},
    {"name": "rude", "regexp": "idiot"},
]


async def moderated_room(bot, options):
    room = await online_room(bot, others=("alice",))
    room.receive_stanza(presence(occupant("mod"), role="moderator"))
    handler = ModerateHandler("moderate", room, options)
    handler.start()
    bot.sent.clear()
    return room, handler


async def test_parses_rules(bot):
    _room, handler = await moderated_room(bot, {"rules": RULES})
    assert [rule.name for rule in handler.rules] == ["spam", "rude"]
    assert handler.rules[0].reason == "No spam"
    assert handler.rules[1].reason is None


async def test_first_matching_rule_wins(bot):
    _room, handler = await moderated_room(bot, {"rules": RULES})
    assert handler.match("BUY NOW you idiot").name == "spam"
    assert handler.match("you idiot").name == "rude"
    assert handler.match("hello") is None


async def test_moderates_matching_message(bot):
    room, _handler = await moderated_room(bot, {"rules": RULES})
    room.receive_stanza(message(occupant("alice"), "Buy now!", stanza_id="sid-1"))
    await drain()
    [iq] = bot.sent_iqs()
    assert iq.find("apply-to").get("id") == "sid-1"
    assert iq.find("apply-to/moderate/reason").text == "No spam"


async def test_ignores_clean_message(bot):
    room, _handler = await moderated_room(bot, {"rules": RULES})
    room.receive_stanza(message(occupant("alice"), "hello", stanza_id="sid-1"))
    await drain()
    assert bot.sent == []


async def test_moderators_are_exempt(bot):
    room, _handler = await moderated_room(bot, {"rules": RULES})
    room.receive_stanza(message(occupant("mod"), "buy now", stanza_id="sid-1"))
    await drain()
    assert bot.sent == []


@pytest.mark.parametrize("key", ["apply_to_moderators", "applyToModerators"])
async def test_apply_to_moderators(bot, key):
    room, handler = await moderated_room(bot, {"rules": RULES, key: True})
    assert handler.apply_to_moderators
    room.receive_stanza(message(occupant("mod"), "buy now", stanza_id="sid-1"))
    await drain()
    assert len(bot.sent_iqs()) == 1


async def test_string_rules(bot):
    _room, handler = await moderated_room(bot, {"rules": "sp[a4]m"})
    assert handler.match("SP4M") is not None
    handler.load_options({"rules": ["foo", "bar"]})
    assert [rule.name for rule in handler.rules] == ["foo", "bar"]


async def test_modifiers(bot):
    _room, handler = await moderated_room(
        bot, {"rules": [{"name": "exact", "pattern": "Spam", "modifiers": ""}]}
    )
    assert handler.match("spam") is None
    assert handler.match("Spam") is not None


async def test_invalid_rule_keeps_previous_rules(bot):
    _room, handler = await moderated_room(bot, {"rules": RULES})
    with pytest.raises(HandlerOptionsError):
        handler.load_options({"rules": ["ok", "("]})
    assert [rule.name for rule in handler.rules] == ["spam", "rude"]
    with pytest.raises(HandlerOptionsError):
        handler.load_options({"rules": [{"name": "x", "pattern": "a", "modifiers": "q"}]})
    with pytest.raises(HandlerOptionsError):
        handler.load_options({"rules": [{"pattern": "no name"}]})
    with pytest.raises(HandlerOptionsError):
        handler.load_options({"rules": [42]})
    assert len(handler.rules) == 2


async def test_invalid_rule_keeps_moderator_exemption(bot):
    room, handler = await moderated_room(bot, {"rules": RULES})
    with pytest.raises(HandlerOptionsError):
        handler.load_options({"applyToModerators": True, "rules": ["("]})
    assert handler.apply_to_moderators is False
    assert [rule.name for rule in handler.rules] == ["spam", "rude"]
    room.receive_stanza(message(occupant("mod"), "buy now", stanza_id="sid-1"))
    await drain()
    assert bot.sent == []


async def test_invalid_rules_fail_construction(bot):
    room = await online_room(bot)
    with pytest.raises(HandlerOptionsError):
        ModerateHandler("moderate", room, {"rules": "("})
    assert room.get_handler_by_id("moderate") is None
