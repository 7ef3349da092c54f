from __future__ import annotations

from devinettes.store import ItemRecord, SubmissionRecord
from devinettes.validator import (
    DAILY_LIMIT_REACHED,
    DUPLICATE_SUBMISSION,
    INVALID_INPUT,
    INVALID_PLAYER_NAME_MESSAGE,
    NOT_FOUND,
    NOT_YET_AVAILABLE,
    SCORING_FIRST_FINDER,
    Accepted,
    GuessRequest,
    Rejected,
    validate,
)


def _item(**overrides) -> ItemRecord:
    fields = {"id": "c1", "prompt": "Qui adore le ski ?", "answer": "Marie Dupont", "day": 1}
    fields.update(overrides)
    return ItemRecord(**fields)


def _prior(item_id: str, day: int, player: str = "alice") -> SubmissionRecord:
    return SubmissionRecord(
        id=f"s-{item_id}",
        player_key=player,
        player_name=player.title(),
        item_id=item_id,
        day=day,
        guess_text="x",
        is_correct=False,
    )


def _request(guess="Marie Dupont", player="Alice", item_id="c1", day=1) -> GuessRequest:
    return GuessRequest(player_name=player, item_id=item_id, guess_text=guess, day=day)


class TestValidate:
    def test_correct_guess_after_normalization(self):
        decision = validate(_request(guess="  marie dupont "), _item(), [])
        assert decision == Accepted(is_correct=True)
        assert decision.accepted

    def test_hyphenated_guess_is_incorrect(self):
        decision = validate(_request(guess="Marie-Dupont"), _item(), [])
        assert decision == Accepted(is_correct=False)

    def test_short_player_name_is_invalid(self):
        decision = validate(_request(player=" A "), _item(), [])
        assert isinstance(decision, Rejected)
        assert decision.reason == INVALID_INPUT
        assert decision.message == INVALID_PLAYER_NAME_MESSAGE

    def test_missing_guess_is_invalid(self):
        decision = validate(_request(guess="   "), _item(), [])
        assert decision.reason == INVALID_INPUT
        assert decision.message == "Données manquantes"

    def test_missing_day_is_invalid(self):
        assert validate(_request(day=None), _item(), []).reason == INVALID_INPUT

    def test_duplicate_beats_every_other_check(self):
        prior = [_prior("c1", day=1), _prior("c2", day=1)]
        decision = validate(_request(), None, prior)
        assert decision.reason == DUPLICATE_SUBMISSION

    def test_daily_cap(self):
        prior = [_prior("c2", day=3), _prior("c3", day=3)]
        assert validate(_request(day=3), _item(), prior).reason == DAILY_LIMIT_REACHED

    def test_daily_cap_counts_only_the_played_day(self):
        prior = [_prior("c2", day=1), _prior("c3", day=2)]
        assert validate(_request(day=3), _item(), prior).accepted

    def test_custom_cap(self):
        prior = [_prior("c2", day=1)]
        assert validate(_request(), _item(), prior, daily_cap=1).reason == DAILY_LIMIT_REACHED

    def test_unknown_item(self):
        assert validate(_request(), None, []).reason == NOT_FOUND

    def test_inactive_item_counts_as_not_found(self):
        assert validate(_request(), _item(is_active=False), []).reason == NOT_FOUND

    def test_future_item_is_not_yet_available(self):
        decision = validate(_request(day=2), _item(day=3), [])
        assert decision.reason == NOT_YET_AVAILABLE
        assert decision.message == "Cet indice n'est pas encore disponible"

    def test_past_item_can_still_be_answered(self):
        assert validate(_request(day=5), _item(day=3), []).accepted

    def test_assigned_days_gate_items_without_a_day(self):
        item = _item(day=None, assigned_days=[4, 6])
        assert validate(_request(day=3), item, []).reason == NOT_YET_AVAILABLE
        assert validate(_request(day=4), item, []).accepted

    def test_item_without_any_schedule_is_open(self):
        assert validate(_request(day=1), _item(day=None), []).accepted


class TestFirstFinderMode:
    def test_correct_guess_on_unclaimed_item_requests_a_claim(self):
        decision = validate(_request(), _item(), [], scoring_mode=SCORING_FIRST_FINDER)
        assert decision == Accepted(is_correct=True, is_first_finder=True, claim_first_finder=True)

    def test_correct_guess_on_claimed_item(self):
        decision = validate(_request(), _item(first_finder="bob"), [], scoring_mode=SCORING_FIRST_FINDER)
        assert decision == Accepted(is_correct=True, is_first_finder=False, claim_first_finder=False)

    def test_wrong_guess_never_claims(self):
        decision = validate(_request(guess="Paul"), _item(), [], scoring_mode=SCORING_FIRST_FINDER)
        assert decision == Accepted(is_correct=False, is_first_finder=False, claim_first_finder=False)

    def test_fixed_mode_has_no_first_finder_notion(self):
        decision = validate(_request(), _item(), [])
        assert decision.is_first_finder is None
        assert not decision.claim_first_finder
