"""Tests for the deterministic local quiz generator."""

import orjson
import pytest

from quiz_engine.models import Difficulty, QuestionType
from quiz_engine.services import generator
from quiz_engine.services.generator import (
    DIFFICULTY_PHRASES,
    DISTRACTOR_SUFFIX,
    OPTION_TEMPLATES,
    generate_questions,
    generate_quiz,
    hash_string,
    mulberry32,
    shuffle,
)


def _fingerprint(questions):
    return [(q.text, q.correct_option_id, tuple(o.text for o in q.options)) for q in questions]


class TestHashAndRng:

    def test_hash_of_empty_string_is_offset_basis(self):
        assert hash_string("") == 2166136261

    def test_hash_matches_fnv1a_reference(self):
        assert hash_string("a") == 0xE40C292C

    def test_hash_is_32_bit(self):
        assert 0 <= hash_string("Sorting Algorithms:advanced:salt-123" * 20) <= 0xFFFFFFFF

    def test_rng_is_reproducible_and_in_range(self):
        first = mulberry32(42)
        second = mulberry32(42)
        values = [first() for _ in range(200)]
        assert values == [second() for _ in range(200)]
        assert all(0 <= v < 1 for v in values)

    def test_rng_matches_reference_sequence(self):
        rng = mulberry32(hash_string("Sorting Algorithms:advanced:salt-1"))
        assert [rng(), rng(), rng()] == [0.19357637222856283, 0.35155904619023204, 0.6242451427970082]

    def test_first_phrase_comes_from_first_draw(self):
        phrases = DIFFICULTY_PHRASES[Difficulty.ADVANCED]
        expected = phrases[int(0.19357637222856283 * len(phrases))]
        [question] = generate_questions("Sorting Algorithms", Difficulty.ADVANCED, 1, "salt-1")
        assert question.text == f"What is the {expected} Sorting Algorithms?"

    def test_shuffle_keeps_every_item(self):
        items = shuffle(list(OPTION_TEMPLATES), mulberry32(7))
        assert sorted(items) == sorted(OPTION_TEMPLATES)


class TestDeterminism:

    @pytest.mark.parametrize("difficulty", list(Difficulty))
    def test_same_inputs_give_identical_output(self, difficulty):
        a = generate_questions("Sorting Algorithms", difficulty, 12, "salt-1")
        b = generate_questions("Sorting Algorithms", difficulty, 12, "salt-1")
        assert orjson.dumps([q.model_dump(mode="json") for q in a]) == orjson.dumps([q.model_dump(mode="json") for q in b])

    def test_string_difficulty_is_accepted(self):
        assert _fingerprint(generate_questions("Graphs", "easy", 5, "x")) == _fingerprint(generate_questions("Graphs", Difficulty.EASY, 5, "x"))

    def test_quiz_id_is_stable(self):
        assert generate_quiz("Graphs", "easy", 5, "x").id == generate_quiz("Graphs", "easy", 5, "x").id


class TestVariation:

    def test_salt_changes_the_question_set(self):
        sets = [_fingerprint(generate_questions("Sorting Algorithms", "intermediate", 12, salt)) for salt in ("a", "b", "c")]
        assert sets[0] != sets[1]
        assert sets[1] != sets[2]
        assert sets[0] != sets[2]

    def test_topic_changes_the_question_set(self):
        a = generate_questions("Sorting Algorithms", "easy", 12, "s")
        b = generate_questions("Hash Tables", "easy", 12, "s")
        assert _fingerprint(a) != _fingerprint(b)


class TestWellFormedness:

    def test_each_question_has_four_options_and_one_correct(self):
        topic = "Dynamic Programming"
        for i, q in enumerate(generate_questions(topic, "advanced", 12, "salt")):
            assert q.id == f"q-{i}"
            assert q.type == QuestionType.SINGLE_CHOICE
            assert [o.id for o in q.options] == [f"{i}-{j}" for j in range(4)]
            plain = [o for o in q.options if not o.text.endswith(DISTRACTOR_SUFFIX)]
            assert len(plain) == 1
            assert q.correct_option_id == plain[0].id
            assert q.has_option(q.correct_option_id)

    def test_question_text_uses_difficulty_phrase(self):
        for q in generate_questions("Recursion", "easy", 8, "salt"):
            assert q.text.startswith("What is the ")
            assert q.text.endswith(" Recursion?")
            phrase = q.text[len("What is the "):-len(" Recursion?")]
            assert phrase in DIFFICULTY_PHRASES[Difficulty.EASY]

    def test_option_texts_come_from_templates(self):
        q = generate_questions("Recursion", "easy", 1, "salt")[0]
        bases = sorted(o.text.replace(DISTRACTOR_SUFFIX, "")[: -len(" Recursion")] for o in q.options)
        assert bases == sorted(OPTION_TEMPLATES)

    @pytest.mark.parametrize("count", [0, -3])
    def test_non_positive_count_gives_empty_set(self, count):
        assert generate_questions("Recursion", "easy", count, "salt") == []

    def test_generated_quiz_uses_defaults(self, monkeypatch):
        monkeypatch.setattr(generator.settings, "default_passing_score", 70)
        quiz = generate_quiz("Recursion", "advanced", 3, "salt", time_limit_minutes=5)
        assert quiz.source == "local"
        assert quiz.passing_score == 70
        assert quiz.time_limit_minutes == 5
        assert quiz.total_points == 3
        assert quiz.title == "Recursion (advanced)"
