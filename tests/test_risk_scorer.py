from __future__ import annotations

from types import SimpleNamespace

import pytest

from redflag_radar.patterns import Severity, build_config
from redflag_radar.risk_scorer import (
    MINIMAL_RISK_SUMMARY,
    RiskScorer,
    analyze_chat_risk,
    round_half_up,
)


@pytest.fixture
def scorer():
    return RiskScorer()


def _same_day(count, date="2024-01-01"):
    return [{"date": date, "sender": "A", "text": "hi"} for _ in range(count)]


@pytest.mark.parametrize("text, messages", [("", []), (None, None), ("", None), ("   \n  ", [])])
def test_empty_input_is_minimal_risk(scorer, text, messages):
    result = scorer.score(text, messages)

    assert result.risk_score == 0
    assert result.red_flags == []
    assert result.keywords_detected == []
    assert result.summary == MINIMAL_RISK_SUMMARY


def test_extortion_and_threats_scenario(scorer):
    result = scorer.score("send me money or I will file a police case", [])

    # Extortion: 25 + 25 + 12.5 breadth; Threats: 3 * 20 + 10 breadth
    assert result.risk_score == 100
    assert result.keywords_detected == ["money", "send me", "police", "case", "file"]
    assert {f.category for f in result.red_flags} == {"Extortion", "Threats"}
    # "will" sits in every context window, so Threats flags escalate to critical
    assert all(f.severity == Severity.CRITICAL for f in result.red_flags)
    assert [f.matched_keyword for f in result.red_flags] == ["money", "send me", "police", "case", "file"]
    assert result.summary == (
        "CRITICAL RISK: 5 critical and 0 high-severity red flags detected. "
        "5 concerning keywords found. Immediate attention recommended."
    )


def test_frequency_multiplier_is_capped_at_three(scorer):
    result = scorer.score("money money money money money", [])

    assert result.risk_score == 75  # 25 * 3, not 25 * 5
    assert len(result.red_flags) == 1
    assert result.red_flags[0].severity == Severity.CRITICAL
    assert result.summary == (
        "HIGH RISK: 0 high-severity red flags detected. "
        "1 concerning keywords found. Review recommended."
    )


def test_medium_escalates_to_high_above_three_repeats(scorer):
    result = scorer.score("guilt guilt guilt guilt", [])

    assert result.red_flags[0].severity == Severity.HIGH
    assert result.risk_score == 45
    assert result.summary == (
        "MODERATE RISK: 1 red flags detected. 1 concerning keywords found. Monitor situation."
    )


def test_medium_stays_medium_at_three_repeats(scorer):
    result = scorer.score("blame blame blame", [])

    assert result.red_flags[0].severity == Severity.MEDIUM


def test_low_escalates_to_medium_above_two_repeats():
    config = build_config({
        "categories": [{"category": "Test", "keywords": ["alpha"], "severity": "low", "weight": 1}],
    })
    scorer = RiskScorer(config)

    assert scorer.score("alpha alpha", []).red_flags[0].severity == Severity.LOW
    assert scorer.score("alpha alpha alpha", []).red_flags[0].severity == Severity.MEDIUM


def test_intensifier_escalates_high_to_critical(scorer):
    with_intensifier = scorer.score("I will hurt you", [])
    without = scorer.score("do not hurt him", [])

    assert with_intensifier.red_flags[0].severity == Severity.CRITICAL
    assert without.red_flags[0].severity == Severity.HIGH
    assert without.risk_score == 20
    assert without.summary == "LOW RISK: 1 minor red flags detected. 1 keywords found. Stay vigilant."


def test_repetition_escalates_high_to_critical_without_intensifier(scorer):
    three = scorer.score("kill kill kill", [])
    two = scorer.score("kill kill", [])

    assert three.red_flags[0].severity == Severity.CRITICAL
    assert three.risk_score == 60
    assert two.red_flags[0].severity == Severity.HIGH
    assert two.risk_score == 40


def test_breadth_bonus_escalates_only_last_flag_and_rounds_half_up(scorer):
    result = scorer.score("guilt, blame and fault", [])

    # 3 * 15 + 7.5 = 52.5 -> 53
    assert result.risk_score == 53
    by_keyword = {f.matched_keyword: f.severity for f in result.red_flags}
    assert by_keyword == {
        "guilt": Severity.MEDIUM,
        "blame": Severity.MEDIUM,
        "fault": Severity.HIGH,
    }
    assert [f.matched_keyword for f in result.red_flags] == ["fault", "guilt", "blame"]


def test_whole_word_matching_only(scorer):
    result = scorer.score("the carpet repayment", [])

    assert result.risk_score == 0
    assert result.red_flags == []


def test_matching_is_case_insensitive_and_context_keeps_case(scorer):
    result = scorer.score("Please SEND ME the Money now", [])

    assert result.keywords_detected == ["money", "send me"]
    assert result.risk_score == 63  # 25 + 25 + 12.5
    assert all(f.context == "Please SEND ME the Money now" for f in result.red_flags)


def test_context_is_truncated_with_ellipsis(scorer):
    text = "a" * 200 + " money " + "b" * 200
    flag = scorer.score(text, []).red_flags[0]

    assert len(flag.context) == 103
    assert flag.context.endswith("...")
    assert "money" in flag.context


def test_keyword_shared_by_two_categories_is_listed_once(scorer):
    result = scorer.score("I demand it", [])

    assert result.keywords_detected == ["demand"]
    assert [(f.category, f.severity) for f in result.red_flags] == [
        ("Extortion", Severity.CRITICAL),
        ("Property/Dowry Demands", Severity.HIGH),
    ]
    assert result.risk_score == 45


def test_excessive_messaging_adds_harassment_flag(scorer):
    result = scorer.score("", _same_day(200))

    assert result.risk_score == 10
    assert len(result.red_flags) == 1
    flag = result.red_flags[0]
    assert flag.category == "Harassment"
    assert flag.severity == Severity.MEDIUM
    assert flag.matched_keyword is None
    assert "200.0" in flag.message
    assert flag.context == "Average 200.0 messages per day"
    assert result.summary == MINIMAL_RISK_SUMMARY


@pytest.mark.parametrize("count, flagged", [(50, False), (51, True)])
def test_harassment_threshold_is_strictly_above_fifty(scorer, count, flagged):
    result = scorer.score("", _same_day(count))

    assert any(f.category == "Harassment" for f in result.red_flags) is flagged


def test_message_frequency_averages_over_distinct_dates(scorer):
    messages = _same_day(60, "2024-01-01") + _same_day(41, "2024-01-02")
    check = scorer.analyze_message_frequency(messages)

    assert check.total_messages == 101
    assert check.total_days == 2
    assert check.avg_per_day == 50.5
    assert check.is_excessive is True


def test_messages_can_be_objects_without_dates(scorer):
    messages = [SimpleNamespace(sender="A", text="x") for _ in range(60)]

    result = scorer.score("", messages)

    assert result.red_flags[0].category == "Harassment"


def test_score_is_clamped_to_one_hundred(scorer):
    text = " ".join([
        "money rupees lakh crore pay payment transfer bank account cash",
        "kill hurt harm police court lawyer",
        "property house car gold dowry",
    ])

    assert scorer.score(text, _same_day(100)).risk_score == 100


def test_flags_are_sorted_by_descending_severity(scorer):
    text = (
        "You're wrong, you're crazy. Stop lying about the affair. "
        "Your family must stay away. Give me the gold and the money."
    )
    result = scorer.score(text, _same_day(80))
    ranks = [f.severity.rank for f in result.red_flags]

    assert ranks == sorted(ranks, reverse=True)
    assert 0 <= result.risk_score <= 100


def test_every_detected_keyword_has_a_flag(scorer):
    text = "Because of you I cut off my friends. Listen to me, obey, or I divorce you."
    result = scorer.score(text, [])
    flagged = {f.matched_keyword for f in result.red_flags}

    assert result.keywords_detected
    assert set(result.keywords_detected) <= flagged


def test_scoring_is_idempotent(scorer):
    text = "Send me money or I will go to the police. You're lying about the affair."
    messages = _same_day(70)

    first = scorer.score(text, messages).to_dict()
    second = scorer.score(text, messages).to_dict()

    assert first == second


def test_to_dict_uses_camel_case(scorer):
    data = scorer.score("pay me", []).to_dict()

    assert set(data) == {"riskScore", "redFlags", "keywordsDetected", "summary"}
    assert data["redFlags"][0] == {
        "category": "Extortion",
        "severity": "critical",
        "message": 'Detected extortion pattern: "pay"',
        "context": "pay me",
        "matchedKeyword": "pay",
    }


def test_module_level_helper_uses_default_table():
    assert analyze_chat_risk("money", []).risk_score == 25


@pytest.mark.parametrize("value, expected", [(52.5, 53), (6.5, 7), (62.4, 62), (0, 0)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected
