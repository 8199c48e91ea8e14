"""Tests for lenient report models."""

import math

from cv_analyzer.models import (
    SECTION_NAMES,
    AIAnalysis,
    JobMatching,
    Priority,
    SalaryRange,
    SkillsAlignment,
    Summary,
    clamp_score,
    score_label,
)


def test_clamp_score_bounds():
    assert clamp_score(150) == 100
    assert clamp_score(-20) == 0
    assert clamp_score(72.6) == 73
    assert clamp_score("85/100") == 85
    assert clamp_score("n/a") is None
    assert clamp_score(None) is None
    assert clamp_score(True) is None
    assert clamp_score(math.nan) is None


def test_clamp_score_non_finite_and_huge_values():
    assert clamp_score(math.inf) == 100
    assert clamp_score(-math.inf) == 0
    assert clamp_score(10**400) == 100
    assert clamp_score(-(10**400)) == 0
    assert clamp_score("9" * 400) == 100


def test_score_label_bands():
    assert score_label(95) == "exceptional"
    assert score_label(80) == "strong"
    assert score_label(79) == "good"
    assert score_label(60) == "fair"
    assert score_label(12) == "poor"


def test_every_score_is_clamped_on_parse():
    analysis = AIAnalysis.model_validate({
        "overallScore": 140,
        "sections": {
            "atsCompatibility": {"score": -5, "details": {"formatScore": 300}},
            "skillsAlignment": {"score": "88"},
        },
        "jobMatching": {"overallMatch": 101, "skillsMatch": -1},
    })
    assert analysis.overall_score == 100
    assert analysis.sections.ats_compatibility.score == 0
    assert analysis.sections.ats_compatibility.details.format_score == 100
    assert analysis.sections.skills_alignment.score == 88
    assert analysis.job_matching.overall_match == 100
    assert analysis.job_matching.skills_match == 0


def test_unknown_fields_are_ignored():
    analysis = AIAnalysis.model_validate({"overallScore": 70, "confidence": "high", "sections": {"extra": {}}})
    assert analysis.overall_score == 70
    assert "confidence" not in analysis.model_dump(by_alias=True)


def test_scalars_coerced_into_lists():
    skills = SkillsAlignment.model_validate({
        "missing": ["Go", {"skill": "Rust", "importance": "high"}],
        "present": "Python",
        "suggestions": "Learn Go",
    })
    assert [s.skill for s in skills.missing] == ["Go", "Rust"]
    assert skills.present[0].skill == "Python"
    assert skills.suggestions == ["Learn Go"]


def test_summary_from_plain_string():
    summary = Summary.model_validate("Solid CV overall")
    assert summary.key_findings == "Solid CV overall"
    assert summary.strengths == ""


def test_recommendations_normalized():
    analysis = AIAnalysis.model_validate({
        "recommendations": [
            {"priority": "URGENT", "suggestion": "Add metrics"},
            {"priority": "low", "suggestion": "  "},
            "Use action verbs",
        ]
    })
    assert len(analysis.recommendations) == 2
    assert analysis.recommendations[0].priority == Priority.MEDIUM
    assert analysis.recommendations[1].suggestion == "Use action verbs"


def test_salary_amounts_parsed():
    salary = SalaryRange.model_validate({"min": "$90k", "max": "130,000"})
    assert salary.min == 90000
    assert salary.max == 130000
    assert salary.currency == "USD"


def test_non_finite_salary_amounts_dropped():
    salary = SalaryRange.model_validate({"min": -math.inf, "max": math.inf})
    assert salary.min is None
    assert salary.max is None

    assert SalaryRange.model_validate({"max": "9" * 400}).max is None


def test_with_defaults_fills_every_section():
    analysis = AIAnalysis.model_validate({"overallScore": 64}).with_defaults(50)
    assert analysis.overall_score == 64
    assert all(section.score == 64 for section in analysis.sections.scored())

    empty = AIAnalysis().with_defaults(50)
    assert empty.overall_score == 50


def test_dump_has_five_named_sections():
    dumped = AIAnalysis().with_defaults(50).model_dump(by_alias=True)
    assert set(dumped["sections"]) == set(SECTION_NAMES)
    assert set(SECTION_NAMES) == {
        "atsCompatibility",
        "skillsAlignment",
        "experienceRelevance",
        "achievementQuantification",
        "marketPositioning",
    }


def test_job_matching_best_matches_keep_objects_only():
    matching = JobMatching.model_validate({"bestMatches": ["junk", {"jobIndex": 0, "compatibilityScore": 120}]})
    assert len(matching.best_matches) == 1
    assert matching.best_matches[0].compatibility_score == 100
