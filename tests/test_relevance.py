"""Keyword-overlap relevance extraction over retrieved chunks."""

from coachbot.config.prompt_templates import DIET_GUIDANCE, GENERIC_GUIDANCE
from coachbot.src.core.models import RetrievalResult
from coachbot.src.core.relevance import expand_keywords, extract_relevant_answer, extract_relevant_sentences, split_sentences


def _result(content, document_id="d"):
    return RetrievalResult(document_id=document_id, content=content, similarity_score=0.9)


class TestKeywords:
    def test_short_words_dropped_and_clusters_expanded(self):
        assert expand_keywords("How do I start?") == ["start", "begin", "beginning", "first", "initial"]

    def test_punctuation_stripped(self):
        assert expand_keywords("keto, carbs!") == ["keto", "carbs"]

    def test_sentence_split_drops_fragments(self):
        assert split_sentences("Keto works. Electrolytes help with the keto flu!") == ["Electrolytes help with the keto flu!"]


class TestExtraction:
    def test_no_overlap_yields_nothing(self):
        results = [_result("Carnivore diets rely on ruminant meat and salt.")]
        assert extract_relevant_sentences(results, "magnesium supplementation") == []

    def test_exact_phrase_ranks_first(self):
        content = "At first, the initial step to start keto is to begin slowly. To start keto safely, drink water daily."
        sentences = extract_relevant_sentences([_result(content)], "start keto safely")
        assert sentences[0] == "To start keto safely, drink water daily."
        assert sentences[1] == "At first, the initial step to start keto is to begin slowly."

    def test_higher_score_wins_and_ties_keep_order(self):
        results = [
            _result("Electrolytes are minerals found in your blood. Magnesium electrolytes reduce cramps at night."),
            _result("Sodium electrolytes matter during early adaptation."),
        ]
        sentences = extract_relevant_sentences(results, "magnesium electrolytes")
        assert sentences == [
            "Magnesium electrolytes reduce cramps at night.",
            "Electrolytes are minerals found in your blood.",
            "Sodium electrolytes matter during early adaptation.",
        ]

    def test_capped_at_five(self):
        content = " ".join(f"Electrolyte tip number {i} is worth remembering." for i in range(8))
        sentences = extract_relevant_sentences([_result(content)], "electrolyte")
        assert len(sentences) == 5
        assert sentences[0] == "Electrolyte tip number 0 is worth remembering."


class TestAnswer:
    def test_two_best_sentences_joined(self):
        knowledge = "Fasting resets insulin levels over time. Fasting also simplifies your meal schedule. Walking is good exercise in general."
        answer = extract_relevant_answer(knowledge, "fasting", "keto")
        assert answer == "Fasting resets insulin levels over time. Fasting also simplifies your meal schedule."

    def test_three_letter_words_count(self):
        knowledge = "Aim for most calories from fat each day. Protein should stay moderate for most people."
        assert extract_relevant_answer(knowledge, "how much fat?", "keto") == "Aim for most calories from fat each day."

    def test_guidance_when_nothing_scores(self):
        assert extract_relevant_answer("Nothing relevant in this passage.", "magnesium", "keto") == DIET_GUIDANCE["keto"]
        assert extract_relevant_answer("Nothing relevant in this passage.", "magnesium", "vegan") == GENERIC_GUIDANCE
