"""Stage 5: pronoun substitution, sentence/word segmentation and triple markup."""

from golem.normalizer import (
    capitalize_sentences,
    capitalize_words,
    substitute_gender,
    substitute_person,
    substitute_person2,
)
from golem.pipeline import Stage, StageProcessor
from golem.template import TagKind


class TextProcessor(StageProcessor):
    stage = Stage.TEXT

    def __init__(self):
        super().__init__()
        self.handlers = {
            TagKind.PERSON: self._person,
            TagKind.PERSON2: self._person2,
            TagKind.GENDER: self._gender,
            TagKind.SENTENCE: self._sentence,
            TagKind.WORD: self._word,
            TagKind.FIRST: self._first,
            TagKind.REST: self._rest,
            TagKind.EXPLODE: self._explode,
            TagKind.SUBJ: self._triple_part,
            TagKind.PRED: self._triple_part,
            TagKind.OBJ: self._obj,
            TagKind.UNIQ: self._uniq,
        }

    # <person/> with no content works on the first wildcard
    @staticmethod
    def _subject(content, ctx):
        return content if content.strip() else ctx.star(1)

    def _person(self, node, content, ctx):
        return substitute_person(self._subject(content, ctx))

    def _person2(self, node, content, ctx):
        return substitute_person2(self._subject(content, ctx))

    def _gender(self, node, content, ctx):
        return substitute_gender(self._subject(content, ctx))

    def _sentence(self, node, content, ctx):
        return capitalize_sentences(content.strip())

    def _word(self, node, content, ctx):
        return capitalize_words(content.strip())

    def _first(self, node, content, ctx):
        words = content.split()
        return words[0] if words else ""

    def _rest(self, node, content, ctx):
        return " ".join(content.split()[1:])

    def _explode(self, node, content, ctx):
        return " ".join(ch for ch in content if not ch.isspace())

    # subj and pred are followed by the next part of the triple
    def _triple_part(self, node, content, ctx):
        content = content.strip()
        return content + " " if content else ""

    def _obj(self, node, content, ctx):
        return content.strip()

    def _uniq(self, node, content, ctx):
        return " ".join(content.split())
