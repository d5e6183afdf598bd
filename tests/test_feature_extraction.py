"""Tests for question, retrieval and route feature extraction."""

import pytest

from wine_router.features import schema
from wine_router.features.dictionaries import EntityDictionaries
from wine_router.features.extraction import (
    QuestionFeatures,
    RetrievalFeatures,
    RouteFeatures,
    extract_question_features,
    extract_retrieval_features,
    extract_route_features,
    jaccard,
    lcs_overlap,
    reranker_vector,
    route_vector,
    tokenize,
)
from wine_router.features.sources import KeywordSourceClassifier
from wine_router.models.core import AcceptanceStats, CandidatePassage


def make_dictionaries() -> EntityDictionaries:
    return EntityDictionaries.from_terms({
        "grapes": ["Sangiovese", "Nebbiolo", "Merlot"],
        "regions": ["Tuscany", "Piedmont"],
        "countries": ["Italy", "France"],
        "appellations": ["Chianti Classico", "Barolo"],
        "producers": ["Antinori"],
    })


class TestEntityDictionaries:
    def test_terms_are_lowercased_and_empty_terms_dropped(self):
        dictionaries = EntityDictionaries.from_terms({"grapes": ["Merlot", " ", "", "SYRAH "]})

        assert dictionaries.grapes == frozenset({"merlot", "syrah"})
        assert dictionaries.size() == 2

    def test_unknown_entity_type(self):
        with pytest.raises(ValueError):
            EntityDictionaries.from_terms({"cheeses": ["brie"]})

    def test_substring_matching(self):
        dictionaries = make_dictionaries()

        assert dictionaries.count_matches("regions", "wines of tuscany and piedmont") == 2
        assert dictionaries.count_all_matches("sangiovese from chianti classico, italy") == 3


class TestQuestionFeatures:
    def setup_method(self):
        self.dictionaries = make_dictionaries()

    def test_vector_follows_schema_order(self):
        features = extract_question_features("What grapes are used in Tuscany of Italy?", self.dictionaries)
        vector = features.to_vector()

        assert len(vector) == len(schema.QUESTION_FIELDS) == 19
        for index, name in enumerate(schema.QUESTION_FIELDS):
            assert vector[index] == float(getattr(features, name))

    def test_lengths_and_patterns(self):
        question = "Is a 2015 Barolo worth $80 at 14% alcohol?"
        features = extract_question_features(question, self.dictionaries)

        assert features.q_length == len(question)
        assert features.q_token_count == 9
        assert features.has_year == 1
        assert features.has_price == 1
        assert features.has_percentage == 1
        assert features.ent_appellations == 1

    def test_entity_counts(self):
        features = extract_question_features("Sangiovese or Merlot from Tuscany, Italy?", self.dictionaries)

        assert features.ent_grapes == 2
        assert features.ent_regions == 1
        assert features.ent_countries == 1
        assert features.ent_producers == 0

    def test_intent_flags(self):
        grape = extract_question_features("What grapes are used in Tuscany of Italy?", self.dictionaries)
        assert grape.intent_grape == 1
        assert grape.intent_non_wine == 0

        pairing = extract_question_features("What wine goes with steak?", self.dictionaries)
        assert pairing.intent_pairing == 1

        joke = extract_question_features("Tell me a joke about wine", self.dictionaries)
        assert joke.intent_joke == 1

        cellar = extract_question_features("How long should I age this bottle in my cellar?", self.dictionaries)
        assert cellar.intent_cellar == 1

    def test_non_wine_question(self):
        features = extract_question_features("How do I change a car tyre?", self.dictionaries)

        assert features.intent_non_wine == 1
        assert features.intent_flags()["non_wine"] is True

    def test_entity_mention_is_not_non_wine(self):
        features = extract_question_features("Tell me about Antinori", self.dictionaries)
        assert features.intent_non_wine == 0

    def test_deterministic(self):
        question = "Recommend a good Nebbiolo from Piedmont under $40"
        first = extract_question_features(question, self.dictionaries)
        second = extract_question_features(question, self.dictionaries)

        assert first == second
        assert first.to_vector() == second.to_vector()

    def test_from_vector_round_trip_and_length_check(self):
        features = extract_question_features("Merlot?", self.dictionaries)

        assert QuestionFeatures.from_vector(features.to_vector()) == features
        with pytest.raises(ValueError):
            QuestionFeatures.from_vector([0.0] * 5)


class TestRetrievalFeatures:
    def setup_method(self):
        self.dictionaries = make_dictionaries()
        self.question = "What grapes are grown in Tuscany?"
        self.candidates = [
            CandidatePassage("Nebbiolo is the grape of Piedmont.", 0.4, "p2"),
            CandidatePassage("Sangiovese grapes are grown in Tuscany.", 0.9, "p1"),
            CandidatePassage("A note from the Antinori winery.", 0.2, "p3"),
        ]

    def test_empty_candidates_give_zero_baseline(self):
        features = extract_retrieval_features(self.question, [], self.dictionaries)

        assert features == RetrievalFeatures()
        assert features.to_vector() == [0.0] * len(schema.RETRIEVAL_FIELDS)

    def test_empty_candidates_keep_acceptance_rates(self):
        acceptance = AcceptanceStats(global_rate=0.6, user_rate=0.4)

        features = extract_retrieval_features(self.question, [], self.dictionaries, acceptance)

        assert features.retr_top1_score == 0.0
        assert features.accept_rate_global == 0.6
        assert features.accept_rate_user == 0.4

    def test_scores_use_best_candidate(self):
        features = extract_retrieval_features(self.question, self.candidates, self.dictionaries)

        assert features.retr_top1_score == 0.9
        assert features.retr_mean_score == pytest.approx(0.5)
        assert features.retr_gap_12 == pytest.approx(0.5)
        assert features.retr_entity_hits_top1 == 2.0
        assert 0.0 < features.retr_jaccard_top1 <= 1.0
        assert 0.0 < features.retr_lcs_top1 <= 1.0

    def test_single_candidate_has_no_gap(self):
        features = extract_retrieval_features(self.question, self.candidates[:1], self.dictionaries)
        assert features.retr_gap_12 == 0.0

    def test_source_flags_come_from_classifier(self):
        features = extract_retrieval_features(self.question, self.candidates, self.dictionaries)
        assert features.src_grape_guide == 1.0
        assert features.src_producer_note == 0.0

        def producer_only(candidate):
            return {"producer_note": True}

        custom = extract_retrieval_features(
            self.question, self.candidates, self.dictionaries, source_classifier=producer_only
        )
        assert custom.src_grape_guide == 0.0
        assert custom.src_producer_note == 1.0

    def test_inputs_not_mutated(self):
        before = [(c.text, c.score, c.source_id) for c in self.candidates]

        extract_retrieval_features(self.question, self.candidates, self.dictionaries)

        assert [(c.text, c.score, c.source_id) for c in self.candidates] == before

    def test_classifier_requires_every_category(self):
        with pytest.raises(ValueError):
            KeywordSourceClassifier({"grape_guide": ("grape",)})


class TestRouteFeatures:
    def test_route_features(self):
        dictionaries = make_dictionaries()
        question_features = extract_question_features("Which grapes grow in the Tuscany region?", dictionaries)
        retrieval_features = RetrievalFeatures(retr_top1_score=0.75, retr_lcs_top1=0.5)

        route = extract_route_features(question_features, retrieval_features, True)

        assert route == RouteFeatures(
            can_answer_from_joins=1.0,
            retrieval_confidence=0.75,
            wants_region=1.0,
            wants_grape=1.0,
            chunk_quality=0.5,
        )
        assert len(route.to_vector()) == len(schema.ROUTE_FIELDS)

    def test_model_vectors_match_schemas(self):
        dictionaries = make_dictionaries()
        question_features = extract_question_features("Merlot?", dictionaries)
        retrieval_features = RetrievalFeatures()
        route = extract_route_features(question_features, retrieval_features, False)
        candidate = CandidatePassage("Merlot is soft.", 0.3)

        assert len(reranker_vector(question_features, retrieval_features, candidate)) == schema.schema_for_kind("reranker").size
        assert len(route_vector(question_features, retrieval_features, route)) == schema.schema_for_kind("route").size
        assert reranker_vector(question_features, retrieval_features, candidate)[-2:] == [15.0, 0.3]


class TestTextHelpers:
    def test_tokenize(self):
        assert tokenize("Rosé, Merlot & Co.") == ["rosé", "merlot", "co"]

    def test_jaccard(self):
        assert jaccard(["a", "b"], ["b", "c"]) == pytest.approx(1 / 3)
        assert jaccard([], ["a"]) == 0.0

    def test_lcs_overlap(self):
        assert lcs_overlap(["a", "b", "c", "d"], ["a", "x", "c", "d"]) == 0.75
        assert lcs_overlap([], ["a"]) == 0.0


class TestSchemas:
    def test_field_counts(self):
        assert schema.schema_for_kind("intent").size == 19
        assert schema.schema_for_kind("reranker").size == 19 + 12 + 2
        assert schema.schema_for_kind("route").size == 19 + 12 + 5

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            schema.schema_for_kind("ranker")

    def test_positional_schema(self):
        positional = schema.FeatureSchema.positional("route", 3)
        assert positional.fields == ("feature_0", "feature_1", "feature_2")
        assert not positional.compatible_with(schema.ROUTE_SCHEMA)
