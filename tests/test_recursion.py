from conftest import aiml, category
from golem.bot import Golem
from golem.config import GolemConfig


def _chain(length):
    """C1 -> C2 -> ... -> C<length> which answers "end"."""
    categories = [category(f"C{i}", f"<srai>C{i + 1}</srai>") for i in range(1, length)]
    categories.append(category(f"C{length}", "end"))
    return aiml(*categories)


def test_srai_redirects_to_another_category(bot, say):
    bot.load_corpus(aiml(
        category("HELLO", "Hello there!"),
        category("HI", "<srai>HELLO</srai>"),
        category("HOWDY *", "<srai>hi</srai> You said <star/>."),
    ))
    assert say("hi") == "Hello there!"
    assert say("howdy partner") == "Hello there! You said partner."


def test_sr_redirects_on_the_first_star(bot, say):
    bot.load_corpus(aiml(
        category("HELLO", "Hello there!"),
        category("PLEASE *", "<sr/>"),
    ))
    assert say("please hello") == "Hello there!"


def test_srai_without_a_match_returns_its_text(evaluate):
    assert evaluate("<srai>nothing matches this</srai>") == "nothing matches this"


def test_srai_captures_are_local_to_the_hop(bot, say):
    bot.load_corpus(aiml(
        category("SAY *", "<star/>"),
        category("ECHO * TWICE", "<srai>SAY <star/></srai> <star/>"),
    ))
    assert say("echo boo twice") == "boo boo"


def test_remembered_name_is_session_scoped(bot):
    bot.load_corpus(aiml(
        category(
            "MY NAME IS *",
            '<think><set name="name"><star/></set>'
            "<learn><category><pattern>WHAT IS MY NAME</pattern>"
            "<template><srai>RECALL NAME</srai></template></category></learn>"
            '</think>Nice to meet you, <get name="name"/>.',
        ),
        category("RECALL NAME", 'Your name is <get name="name"/>.'),
    ))
    alice, other = bot.create_session("alice"), bot.create_session("other")
    assert bot.process_input("My name is Ada", alice.id) == "Nice to meet you, Ada."
    assert bot.process_input("What is my name?", alice.id) == "Your name is Ada."

    response = bot.respond("What is my name?", other.id)
    assert response.is_fallback
    assert response.text == bot.config.not_understood_response


def test_infinite_srai_loop_terminates(bot, say):
    bot.load_corpus(aiml(category("LOOP", "<srai>LOOP</srai>")))
    assert say("loop") == ""


def test_mutual_recursion_terminates_with_partial_output(bot, say):
    bot.load_corpus(aiml(
        category("PING", "x <srai>PONG</srai>"),
        category("PONG", "<srai>PING</srai>"),
    ))
    reply = say("ping")
    assert reply.startswith("x x")
    assert set(reply.split()) == {"x"}


def test_recursion_limit_is_configurable():
    shallow = Golem(GolemConfig(max_recursion_depth=3))
    deep = Golem(GolemConfig())
    try:
        for instance in (shallow, deep):
            instance.load_corpus(_chain(5))
        assert shallow.process_input("c1") == ""
        assert deep.process_input("c1") == "end"
        assert shallow.process_input("c2") == "end"
    finally:
        shallow.close()
        deep.close()
