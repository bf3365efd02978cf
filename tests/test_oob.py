import pytest

from conftest import aiml, category
from golem.oob import OOBRegistry, parse_oob_message


def test_template_oob_calls_registered_handler(bot, say):
    calls = []

    def alarm(payload, session):
        calls.append((payload, session.id))
        return f"Alarm set for {payload}."

    bot.register_oob_handler("alarm", alarm, "Set an alarm")
    bot.load_corpus(aiml(category("WAKE ME AT *", "<oob><alarm><star/></alarm></oob>")))
    assert say("wake me at 7am") == "Alarm set for 7am."
    assert calls[0][0] == "7am"


def test_unregistered_oob_contributes_nothing(bot, say):
    bot.load_corpus(aiml(category("DIAL", "Dialing.<oob><dial>555</dial></oob>")))
    assert say("dial") == "Dialing."


def test_failing_handler_is_contained(bot, say):
    def broken(payload, session):
        raise RuntimeError("device offline")

    bot.register_oob_handler("camera", broken)
    bot.load_corpus(aiml(category("PHOTO", "Say cheese.<oob><camera>on</camera></oob>")))
    assert say("photo") == "Say cheese."


def test_raw_oob_input_is_dispatched_directly(bot, session):
    bot.register_oob_handler("volume", lambda payload, s: f"volume {payload}")
    response = bot.respond("<oob><volume>11</volume></oob>", session.id)
    assert response.text == "volume 11"
    assert response.pattern is None


def test_registry_management():
    registry = OOBRegistry()
    registry.register_handler("Email", lambda p, s: "sent", "Send an email")
    assert registry.has_handler("email")
    assert registry.list_handlers() == {"email": "Send an email"}
    assert registry.unregister_handler("EMAIL") is True
    assert registry.unregister_handler("email") is False
    with pytest.raises(ValueError):
        registry.register_handler("", lambda p, s: "")
    with pytest.raises(TypeError):
        registry.register_handler("sms", "not callable")


def test_parse_oob_message():
    assert parse_oob_message("<oob><search>golem facts</search></oob>") == ("search", "golem facts")
    assert parse_oob_message("  <oob> <map type='x'>here</map> </oob> ") == ("map", "here")
    assert parse_oob_message("hello <oob>") is None
