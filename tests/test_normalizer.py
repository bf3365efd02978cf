import pytest

from golem.normalizer import (
    denormalize,
    expand_contractions,
    normalize,
    normalize_pattern,
    normalize_that,
    substitute_gender,
    substitute_person,
    substitute_person2,
    tokenize,
    tokenize_preserving_case,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Hello, World!", "HELLO WORLD"),
        ("  what's   up?? ", "WHAT IS UP"),
        ("I don't know", "I DO NOT KNOW"),
        ("I'd've gone", "I WOULD HAVE GONE"),
        ("you can't", "YOU CANNOT"),
        ("well-known snake_case", "WELL KNOWN SNAKE CASE"),
        ("", ""),
    ],
)
def test_normalize(raw, expected):
    assert normalize(raw) == expected


@pytest.mark.parametrize("raw", ["What's the time, Mr. Wolf?", "They're here!!", "a-b_c d", "I'd've"])
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


def test_expand_contractions_keeps_case():
    assert expand_contractions("It's fine, isn't it") == "It is fine, is not it"


def test_case_preserving_tokens_align_with_folded_tokens():
    text = "My name is Ada-Lovelace!"
    folded = tokenize(text)
    original = tokenize_preserving_case(text)
    assert folded == ["MY", "NAME", "IS", "ADA", "LOVELACE"]
    assert [t.upper() for t in original] == folded
    assert original[-2:] == ["Ada", "Lovelace"]


def test_normalize_pattern_keeps_wildcards_and_sets():
    assert normalize_pattern("hello *") == "HELLO *"
    assert normalize_pattern("HELLO*") == "HELLO *"
    assert normalize_pattern("_ is great") == "_ IS GREAT"
    assert normalize_pattern("I like <set>Colors</set> things") == "I LIKE <set>colors</set> THINGS"
    assert normalize_pattern('I like <set name="colors"/>') == "I LIKE <set>colors</set>"


def test_normalize_that_uses_last_sentence():
    assert normalize_that("Hi there. What is your name?") == "WHAT IS YOUR NAME"
    assert normalize_that("") == ""


def test_denormalize():
    assert denormalize("HELLO WORLD") == "Hello world."
    assert denormalize("are you there?") == "Are you there?"
    assert denormalize("   ") == ""


def test_person_substitution():
    assert substitute_person("I am happy with my dog") == "you are happy with your dog"
    assert substitute_person("you are nice") == "I am nice"
    assert substitute_person("My cat") == "Your cat"


def test_person2_and_gender_substitution():
    assert substitute_person2("I lost my keys") == "he lost his keys"
    assert substitute_gender("He gave her his book") == "She gave his her book"
