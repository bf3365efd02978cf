import pytest

from golem.pipeline import Stage, StageProcessor, TemplateEvaluator, default_processors, tidy
from golem.template import TagKind


class ShoutingStarProcessor(StageProcessor):
    stage = Stage.FORMAT

    def __init__(self):
        super().__init__()
        self.handlers = {TagKind.STAR: lambda node, content, ctx: "STAR"}


def test_every_tag_has_exactly_one_owner():
    evaluator = TemplateEvaluator(default_processors())
    structural = {TagKind.LI, TagKind.LOOP, TagKind.CATEGORY, TagKind.PATTERN, TagKind.TEMPLATE, TagKind.UNKNOWN}
    for kind in TagKind:
        if kind in structural:
            assert evaluator.stage_of(kind) is None
        else:
            assert evaluator.stage_of(kind) is not None, kind


def test_duplicate_ownership_is_rejected():
    with pytest.raises(ValueError):
        TemplateEvaluator(default_processors() + [ShoutingStarProcessor()])


def test_processors_run_in_stage_order():
    evaluator = TemplateEvaluator(list(reversed(default_processors())))
    assert [p.stage for p in evaluator.processors] == sorted(Stage)


@pytest.mark.parametrize(
    "kind, stage",
    [
        (TagKind.STAR, Stage.WILDCARD),
        (TagKind.CONDITION, Stage.VARIABLE),
        (TagKind.SRAI, Stage.RECURSION),
        (TagKind.RANDOM, Stage.DATA),
        (TagKind.PERSON, Stage.TEXT),
        (TagKind.UPPERCASE, Stage.FORMAT),
        (TagKind.MAP, Stage.COLLECTION),
        (TagKind.SIZE, Stage.SYSTEM),
    ],
)
def test_stage_assignment(kind, stage):
    assert TemplateEvaluator(default_processors()).stage_of(kind) is stage


def test_inner_tags_resolve_before_outer(evaluate):
    assert evaluate("<uppercase><person>I am <star/></person></uppercase>", stars=["here"]) == "YOU ARE HERE"


def test_unknown_tags_are_re_emitted_with_evaluated_content(evaluate):
    assert evaluate('<custom a="1"><uppercase>x</uppercase></custom>') == '<custom a="1">X</custom>'


def test_metrics_count_dispatches(bot, evaluate):
    bot.evaluator.reset_metrics()
    evaluate("<uppercase><star/></uppercase><lowercase>A</lowercase>", stars=["a"])
    metrics = bot.evaluator.metrics
    assert metrics["format"] == 2
    assert metrics["wildcard"] == 1


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  hello  ", "  hello"),
        ("\n    hello\n", "hello"),
        ("\n\n  hello", "hello"),
        ("hello\n\n", "hello"),
        ("", ""),
    ],
)
def test_tidy(raw, expected):
    assert tidy(raw) == expected
