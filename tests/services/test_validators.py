"""
Schema validator 테스트
거부는 stem 누락 / 유형 해석 불가일 때만, 나머지는 스펙 값으로 보강
"""
import pytest

from conftest import make_item
from qbgen.services.repair import BACKFILLED_MARK
from qbgen.services.spec_resolver import resolve_spec
from qbgen.services.validators import (
    ItemTypeResolver,
    check_difficulty,
    check_level,
    check_minutes,
    clean_options,
    validate_all,
    validate_candidate,
)


def _validate(candidate, spec, **kwargs):
    resolver = kwargs.pop("resolver", ItemTypeResolver(spec.item_type))
    return validate_candidate(candidate, spec, resolver=resolver, **kwargs)


class TestRejection:
    @pytest.mark.parametrize("stem", [None, "", "   ", 42, ["x"]])
    def test_missing_or_blank_stem(self, backend_spec, stem):
        item, reason = _validate({**make_item("x"), "stem": stem}, backend_spec)
        assert item is None
        assert "stem" in reason

    def test_non_object(self, backend_spec):
        item, reason = _validate(["stem", "x"], backend_spec)
        assert item is None

    def test_unknown_spec_type_cannot_resolve(self, backend_spec):
        spec = backend_spec.model_copy(update={"item_type": "essay"})
        item, reason = _validate(make_item("Q"), spec)
        assert item is None
        assert "type" in reason


class TestBackfillFromSpec:
    """잘못된 필드는 스펙 값으로 대체"""

    def test_well_formed_item_kept_as_is(self, backend_spec):
        item, _ = _validate(make_item("Q", level="senior", difficulty="hard", estimatedTime=7), backend_spec)
        assert item.level == "senior"
        assert item.difficulty == "hard"
        assert item.estimated_time == 7
        assert item.meta.backfilled_fields == []

    def test_malformed_fields_replaced(self, backend_spec):
        candidate = make_item(
            "Q",
            level=3,
            difficulty="impossible",
            category="",
            fields="Backend",
            topics=[1, 2],
            skills=None,
            estimatedTime="five",
            tags="x",
        )
        item, _ = _validate(candidate, backend_spec)
        assert item.level == "middle"
        assert item.difficulty == "medium"
        assert item.category == "Backend"
        assert item.fields == ["Backend"]
        assert item.topics == []
        assert item.skills == []
        assert item.estimated_time == 3
        assert item.tags == []
        assert set(item.meta.backfilled_fields) >= {
            "level", "difficulty", "category", "fields", "topics", "skills", "estimatedTime", "tags"
        }

    def test_level_alias_is_canonicalised(self, backend_spec):
        item, _ = _validate(make_item("Q", level="Sr"), backend_spec)
        assert item.level == "senior"

    def test_numeric_difficulty(self, backend_spec):
        item, _ = _validate(make_item("Q", difficulty=5), backend_spec)
        assert item.difficulty == "hard"

    def test_spec_type_wins_for_concrete(self, backend_spec):
        item, _ = _validate(make_item("Q", type="free_text"), backend_spec)
        assert item.type == "multiple_choice"

    def test_coding_default_time_doubles(self, backend_spec):
        spec = backend_spec.model_copy(update={"item_type": "coding", "difficulty": "hard"})
        candidate = make_item("Write a function", options=None, difficulty=None)
        candidate.pop("estimatedTime")
        item, _ = _validate(candidate, spec)
        assert item.options is None
        assert item.estimated_time == 10

    def test_fragment_marks_carried_over(self, backend_spec):
        candidate = make_item("Q")
        candidate[BACKFILLED_MARK] = ["type", "level"]
        item, _ = _validate(candidate, backend_spec, source="fragment")
        assert item.meta.source == "fragment"
        assert item.meta.backfilled_fields[:2] == ["type", "level"]


class TestOptions:
    def test_blank_options_dropped_and_booleans_coerced(self):
        options, ok = clean_options([
            {"text": "A", "isCorrect": "true"},
            {"text": "", "isCorrect": True},
            {"text": "B", "isCorrect": 1},
            {"text": "C", "is_correct": False},
            "D",
            None,
        ])
        assert ok
        assert [o.text for o in options] == ["A", "B", "C", "D"]
        assert [o.is_correct for o in options] == [True, True, False, False]

    def test_not_a_list(self):
        assert clean_options("A, B") == ([], False)

    def test_single_choice_answer_rule_is_advisory(self, backend_spec):
        spec = backend_spec.model_copy(update={"item_type": "single_choice"})
        item, reason = _validate(make_item("Q"), spec)  # 정답 2개
        assert reason is None
        assert item.meta.answer_rule == "exactly_one_correct"
        assert item.meta.answer_rule_ok is False

    def test_multiple_choice_answer_rule(self, backend_spec):
        item, _ = _validate(make_item("Q"), backend_spec)
        assert item.meta.answer_rule_ok is True

    def test_empty_options_kept_empty(self, backend_spec):
        item, _ = _validate(make_item("Q", options=[]), backend_spec)
        assert item.options == []
        assert item.meta.answer_rule_ok is False
        assert "options" in item.meta.backfilled_fields

    def test_public_form_uses_wire_names(self, backend_spec):
        item, _ = _validate(make_item("Q"), backend_spec)
        public = item.to_public()
        assert public["estimatedTime"] == 3
        assert public["options"][0] == {"text": "A", "isCorrect": True}


class TestMixedResolution:
    def test_rotation_is_deterministic(self):
        resolver = ItemTypeResolver("mixed")
        assert [resolver.resolve(None) for _ in range(4)] == [
            "single_choice", "multiple_choice", "single_choice", "multiple_choice"
        ]

    def test_candidate_choice_type_kept(self):
        resolver = ItemTypeResolver("mixed")
        assert resolver.resolve("multiple_choice") == "multiple_choice"
        assert resolver.resolve("coding") == "single_choice"

    def test_same_input_same_output(self):
        spec = resolve_spec({"fields": ["Frontend"], "questionType": "mixed", "questionCount": 4})
        candidates = [{"stem": f"Q{i}"} for i in range(4)]
        first = [i.type for i in validate_all(candidates, spec, resolver=ItemTypeResolver("mixed"), source="batch")]
        second = [i.type for i in validate_all(candidates, spec, resolver=ItemTypeResolver("mixed"), source="batch")]
        assert first == second == ["single_choice", "multiple_choice", "single_choice", "multiple_choice"]


class TestSimilarity:
    def test_near_duplicate_recorded_not_rejected(self, backend_spec):
        existing = ["What is the difference between REST and GraphQL APIs?"]
        item, reason = _validate(
            make_item("What is the difference between REST and GraphQL APIs"),
            backend_spec,
            existing_stems=existing,
        )
        assert reason is None
        assert item.meta.similar_to == existing[0]
        assert item.meta.similarity == 1.0

    def test_different_stem_not_flagged(self, backend_spec):
        item, _ = _validate(make_item("Explain database sharding"), backend_spec, existing_stems=["What is CORS?"])
        assert item.meta.similar_to is None


class TestValidateAll:
    def test_rejections_reported_and_order_kept(self, backend_spec):
        rejected = []
        items = validate_all(
            [make_item("A"), {"type": "x"}, make_item("B")],
            backend_spec,
            resolver=ItemTypeResolver(backend_spec.item_type),
            source="batch",
            on_reject=rejected.append,
        )
        assert [i.stem for i in items] == ["A", "B"]
        assert [i.meta.slot for i in items] == [0, 2]
        assert len(rejected) == 1

    def test_exception_drops_only_that_candidate(self, backend_spec, monkeypatch):
        from qbgen.services import validators as validators_module

        real = validators_module.validate_candidate

        def flaky(candidate, *args, **kwargs):
            if candidate.get("stem") == "Boom":
                raise OverflowError("cannot convert float infinity to integer")
            return real(candidate, *args, **kwargs)

        monkeypatch.setattr(validators_module, "validate_candidate", flaky)
        rejected = []
        items = validate_all(
            [make_item("A"), make_item("Boom"), make_item("B")],
            backend_spec,
            resolver=ItemTypeResolver(backend_spec.item_type),
            source="batch",
            on_reject=rejected.append,
        )
        assert [i.stem for i in items] == ["A", "B"]
        assert "OverflowError" in rejected[0]


class TestPresenceChecks:
    def test_level(self):
        assert check_level("Mid-Level").value == "middle"
        assert not check_level("guru").present

    def test_difficulty(self):
        assert check_difficulty(2).value == "easy"
        assert not check_difficulty(True).present
        assert not check_difficulty("tricky").present

    @pytest.mark.parametrize("raw", [float("inf"), float("-inf"), float("nan"), 0, -2, True, "5"])
    def test_minutes_rejects_non_finite_and_non_positive(self, raw):
        assert not check_minutes(raw).present

    def test_minutes_rounds(self):
        assert check_minutes(4.6).value == 5


def test_non_finite_estimated_time_backfilled(backend_spec):
    item, _ = _validate(make_item("Q", estimatedTime=float("inf")), backend_spec)
    assert item.estimated_time == 3
    assert "estimatedTime" in item.meta.backfilled_fields
