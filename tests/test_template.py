import pytest

from golem.category import Category, LearnedCategoryRecord, LearningScope, PatternKey
from golem.errors import CategoryError, TemplateSyntaxError
from golem.template import TagKind, TagNode, TextNode, parse_template, to_markup


def test_parse_builds_typed_tree():
    nodes = parse_template('Hello <star/>, <uppercase><get name="x"/></uppercase>!')
    assert nodes[0] == TextNode("Hello ")
    assert isinstance(nodes[1], TagNode) and nodes[1].kind is TagKind.STAR
    assert nodes[1].self_closing
    upper = nodes[3]
    assert upper.kind is TagKind.UPPERCASE
    assert upper.children[0].kind is TagKind.GET
    assert upper.children[0].attr("name") == "x"
    assert nodes[-1] == TextNode("!")


def test_unknown_tags_are_kept_as_unknown_kind():
    (node,) = parse_template('<custom a="1">x</custom>')
    assert node.kind is TagKind.UNKNOWN
    assert node.to_markup() == '<custom a="1">x</custom>'


def test_entities_are_decoded_and_re_escaped():
    nodes = parse_template("fish &amp; chips")
    assert nodes == (TextNode("fish & chips"),)
    assert to_markup(nodes) == "fish &amp; chips"


@pytest.mark.parametrize("markup", ["<srai>hello", "hello</srai>", "<think><set name='a'>x</think></set>"])
def test_malformed_templates_raise(markup):
    with pytest.raises(TemplateSyntaxError):
        parse_template(markup)


def test_contains_searches_descendants():
    (node,) = parse_template("<think><uppercase><srai>X</srai></uppercase></think>")
    assert node.contains(TagKind.SRAI)
    assert not node.contains(TagKind.SR)


def test_category_build_normalizes_key():
    category = Category.build("hello, *!", "Hi <star/>", that="what's up?", topic="*")
    assert category.key == PatternKey("HELLO *", "WHAT IS UP", "")
    assert category.pattern_type == "wildcard"
    assert not category.is_exact


@pytest.mark.parametrize(
    "pattern, expected",
    [("HELLO", "exact"), ("HELLO _", "underscore"), ("I LIKE <set>colors</set>", "set"), ("HI *", "wildcard")],
)
def test_pattern_types(pattern, expected):
    assert Category.build(pattern, "x").pattern_type == expected


def test_category_build_rejects_bad_input():
    with pytest.raises(CategoryError):
        Category.build("   ", "x")
    with pytest.raises(CategoryError):
        Category.build("HELLO", "<uppercase>x</lowercase>")
    with pytest.raises(CategoryError):
        Category.build("HELLO", None)


def test_pattern_key_encoding():
    key = PatternKey("HELLO *", "WHAT", "FOOD")
    assert PatternKey.decode(key.encode()) == key
    assert str(key) == "HELLO * | THAT WHAT | TOPIC FOOD"


def test_learned_record_from_dict_rebuilds_category():
    record = LearnedCategoryRecord(
        Category.build("GET X FOR BOB", "42", source="learnf"), LearningScope.PERSISTENT, session_id="s1", source="learnf"
    )
    restored = LearnedCategoryRecord.from_dict(record.to_dict())
    assert restored.category == record.category
    assert restored.scope is LearningScope.PERSISTENT
    assert restored.session_id == "s1"
