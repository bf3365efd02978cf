import pytest

from conftest import aiml, category
from golem.corpus import corpus_files, parse_corpus, parse_fragment, parse_map, parse_set


def test_parse_corpus_with_topics_and_that():
    document = aiml(
        category("HELLO", "Hi!"),
        category("YES", "Great.", that="DO YOU LIKE CATS"),
        '<topic name="food"><category><pattern>MORE</pattern><template>Pie.</template></category></topic>',
    )
    result = parse_corpus(document, source="inline")
    assert result.ok
    keys = [(c.pattern, c.that, c.topic) for c in result.categories]
    assert keys == [("HELLO", "", ""), ("YES", "DO YOU LIKE CATS", ""), ("MORE", "", "FOOD")]
    assert all(c.source == "inline" for c in result.categories)


def test_namespaced_document_loads():
    document = (
        '<aiml xmlns="http://alicebot.org/2001/AIML-1.0.1">'
        "<category><pattern>HI</pattern><template>Hello</template></category></aiml>"
    )
    (only,) = parse_corpus(document).categories
    assert only.pattern == "HI"


def test_template_markup_is_preserved():
    result = parse_corpus(aiml(category("HI *", 'Hello <uppercase><star/></uppercase> &amp; bye')))
    template = result.categories[0].template
    assert "<uppercase><star /></uppercase>" in template
    assert "&amp; bye" in template


def test_invalid_category_is_rejected_but_others_load():
    document = aiml(
        category("GOOD", "fine"),
        "<category><pattern></pattern><template>x</template></category>",
        "<category><pattern>NO TEMPLATE</pattern></category>",
        category("ALSO GOOD", "fine"),
    )
    result = parse_corpus(document)
    assert [c.pattern for c in result.categories] == ["GOOD", "ALSO GOOD"]
    assert len(result.errors) == 2
    assert not result.ok


def test_malformed_document_loads_category_by_category():
    document = (
        "<aiml>"
        + category("ONE", "1")
        + "<category><pattern>BROKEN</pattern><template><b>oops</template></category>"
        + category("TWO", "2")
    )
    result = parse_corpus(document)
    assert [c.pattern for c in result.categories] == ["ONE", "TWO"]
    assert len(result.errors) == 2


def test_parse_fragment():
    result = parse_fragment("<category><pattern>X</pattern><template>y</template></category>")
    assert result.categories[0].pattern == "X"


def test_parse_set_formats():
    assert parse_set('["red", ["dark", "blue"], " "]') == ["red", "dark blue"]
    assert parse_set("# colors\nred\n\ngreen\n") == ["red", "green"]
    with pytest.raises(ValueError):
        parse_set("[not json")


def test_parse_map_formats():
    assert parse_map('{"France": "Paris"}') == {"France": "Paris"}
    assert parse_map('[["Japan", "Tokyo"]]') == {"Japan": "Tokyo"}
    assert parse_map("Spain: Madrid\nno separator\n# note\n") == {"Spain": "Madrid"}
    with pytest.raises(ValueError):
        parse_map('[["only one"]]')


def _write_corpus(root):
    (root / "bot.properties").write_text("name=Golem\n", encoding="utf-8")
    (root / "sets").mkdir()
    (root / "sets" / "colors.set").write_text('["red", "green", "dark blue"]', encoding="utf-8")
    (root / "capitals.map").write_text("France:Paris\n", encoding="utf-8")
    (root / "core.aiml").write_text(
        aiml(
            category("I LIKE <set>colors</set>", "<star/> is a fine color."),
            category("CAPITAL OF *", '<map name="capitals"><star/></map>'),
            category("WHO ARE YOU", 'I am <bot name="name"/>.'),
        ),
        encoding="utf-8",
    )
    (root / "notes.txt").write_text("ignored", encoding="utf-8")


def test_corpus_files_are_ordered_by_kind(tmp_path):
    _write_corpus(tmp_path)
    kinds = [kind for kind, _ in corpus_files(tmp_path)]
    assert kinds == ["properties", "set", "map", "aiml"]
    with pytest.raises(FileNotFoundError):
        corpus_files(tmp_path / "missing")


def test_load_directory_wires_sets_maps_and_properties(bot, say, tmp_path):
    _write_corpus(tmp_path)
    result = bot.load(tmp_path)
    assert len(result.categories) == 3
    assert say("I like dark blue") == "dark blue is a fine color."
    assert say("I like purple") == bot.config.not_understood_response
    assert say("capital of France") == "Paris"
    assert say("who are you") == "I am Golem."


def test_load_file_errors(bot, tmp_path):
    with pytest.raises(FileNotFoundError):
        bot.load_file(tmp_path / "missing.aiml")
    with pytest.raises(ValueError):
        bot.load_file(tmp_path / "notes.txt")
