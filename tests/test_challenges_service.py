"""
Tests for challenge creation, joining, peer voting and archiving.
"""

from datetime import datetime, timedelta

import pytest

from dailydues.models import ChallengeMember
from dailydues.services import challenges as challenge_service
from dailydues.services.errors import NotAuthorized, NotFound, StateConflict, ValidationError

START = datetime(2025, 3, 1, 9, 0)
DURING = START + timedelta(hours=2)
AFTER = START + timedelta(hours=25)


@pytest.fixture
def setup(factory, actor_for):
    admin = factory.admin()
    alice = factory.user(name="Alice")
    bob = factory.user(name="Bob")
    carol = factory.user(name="Carol")
    realm = factory.realm(members=[alice, bob, carol])
    commitment = factory.commitment(realm)

    admin_actor = actor_for(admin)
    challenge = challenge_service.create_challenge(
        admin_actor,
        realm_id=realm.id,
        commitment_id=commitment.id,
        name="Max push-ups",
        duration_hours=24,
        max_units=100,
        now=START,
    )

    class Setup:
        pass

    s = Setup()
    s.realm, s.commitment, s.challenge = realm, commitment, challenge
    s.admin = admin_actor
    s.alice, s.bob, s.carol = actor_for(alice), actor_for(bob), actor_for(carol)
    return s


def _join_all(s, *actors):
    for actor in actors:
        challenge_service.join_challenge(actor, s.challenge.id, now=DURING)


class TestCreate:
    def test_ends_after_duration(self, setup):
        assert setup.challenge.ends_at == START + timedelta(hours=24)
        assert setup.challenge.status == "active"

    def test_admin_only(self, setup):
        with pytest.raises(NotAuthorized):
            challenge_service.create_challenge(
                setup.alice, setup.realm.id, setup.commitment.id, "x", 1, 10
            )

    @pytest.mark.parametrize("hours,units", [(0, 10), (5, 0), (-1, 10), (5, "ten")])
    def test_positive_numbers_required(self, setup, hours, units):
        with pytest.raises(ValidationError):
            challenge_service.create_challenge(
                setup.admin, setup.realm.id, setup.commitment.id, "x", hours, units
            )

    def test_commitment_must_belong_to_realm(self, setup, factory):
        other_realm = factory.realm()
        with pytest.raises(ValidationError):
            challenge_service.create_challenge(
                setup.admin, other_realm.id, setup.commitment.id, "x", 1, 10
            )


class TestJoin:
    def test_join_once(self, setup):
        member = challenge_service.join_challenge(setup.alice, setup.challenge.id, now=DURING)
        assert member.user_id == setup.alice.user_id

        with pytest.raises(StateConflict, match="Already joined"):
            challenge_service.join_challenge(setup.alice, setup.challenge.id, now=DURING)

    def test_cannot_join_after_end(self, setup):
        with pytest.raises(StateConflict, match="ended"):
            challenge_service.join_challenge(setup.alice, setup.challenge.id, now=AFTER)

    def test_cannot_join_archived(self, setup):
        challenge_service.archive_challenge(setup.admin, setup.challenge.id)
        with pytest.raises(StateConflict, match="not active"):
            challenge_service.join_challenge(setup.alice, setup.challenge.id, now=DURING)

    def test_unknown_challenge(self, setup):
        with pytest.raises(NotFound):
            challenge_service.join_challenge(setup.alice, 999, now=DURING)


class TestVote:
    def test_vote_is_recorded(self, setup):
        s = setup
        _join_all(s, s.alice, s.bob)

        votes = challenge_service.submit_vote(s.alice, s.challenge.id, s.bob.user_id, 5, now=DURING)

        assert votes == {s.alice.user_id: 5}

    def test_votes_only_increase(self, setup):
        s = setup
        _join_all(s, s.alice, s.bob)
        challenge_service.submit_vote(s.alice, s.challenge.id, s.bob.user_id, 5, now=DURING)

        with pytest.raises(StateConflict, match="Current vote: 5"):
            challenge_service.submit_vote(s.alice, s.challenge.id, s.bob.user_id, 3, now=DURING)

        votes = challenge_service.submit_vote(s.alice, s.challenge.id, s.bob.user_id, 8, now=DURING)
        assert votes == {s.alice.user_id: 8}

    def test_self_vote_rejected(self, setup):
        s = setup
        _join_all(s, s.alice)
        with pytest.raises(StateConflict, match="yourself"):
            challenge_service.submit_vote(s.alice, s.challenge.id, s.alice.user_id, 5, now=DURING)

    def test_voter_must_be_member(self, setup):
        s = setup
        _join_all(s, s.bob)
        with pytest.raises(NotAuthorized):
            challenge_service.submit_vote(s.alice, s.challenge.id, s.bob.user_id, 5, now=DURING)

    def test_target_must_be_member(self, setup):
        s = setup
        _join_all(s, s.alice)
        with pytest.raises(NotFound):
            challenge_service.submit_vote(s.alice, s.challenge.id, s.bob.user_id, 5, now=DURING)

    def test_vote_capped_by_max_units(self, setup):
        s = setup
        _join_all(s, s.alice, s.bob)
        with pytest.raises(ValidationError):
            challenge_service.submit_vote(s.alice, s.challenge.id, s.bob.user_id, 101, now=DURING)

    def test_no_votes_after_end(self, setup):
        s = setup
        _join_all(s, s.alice, s.bob)
        with pytest.raises(StateConflict, match="ended"):
            challenge_service.submit_vote(s.alice, s.challenge.id, s.bob.user_id, 5, now=AFTER)


class TestLeaderboardAndArchive:
    def _vote_round(self, s):
        _join_all(s, s.alice, s.bob, s.carol)
        cid = s.challenge.id
        # Bob gets 10 and 12 -> agreed 10; Carol gets 30 and 25 -> agreed 25
        challenge_service.submit_vote(s.alice, cid, s.bob.user_id, 10, now=DURING)
        challenge_service.submit_vote(s.carol, cid, s.bob.user_id, 12, now=DURING)
        challenge_service.submit_vote(s.alice, cid, s.carol.user_id, 30, now=DURING)
        challenge_service.submit_vote(s.bob, cid, s.carol.user_id, 25, now=DURING)
        # Alice has a single vote only
        challenge_service.submit_vote(s.bob, cid, s.alice.user_id, 50, now=DURING)

    def test_leaderboard_uses_lowest_vote(self, setup):
        s = setup
        self._vote_round(s)

        board = challenge_service.get_challenge_leaderboard(s.alice, s.challenge.id)

        names = [e["user_name"] for e in board["entries"]]
        scores = [e["agreed_reps"] for e in board["entries"]]
        assert names == ["Carol", "Bob", "Alice"]
        assert scores == [25, 10, None]
        assert board["is_valid"] is True
        assert board["current_user_id"] == s.alice.user_id

    def test_archive_freezes_final_reps(self, setup):
        s = setup
        self._vote_round(s)

        challenge = challenge_service.archive_challenge(s.admin, s.challenge.id)

        assert challenge.status == "archived"
        finals = {m.user_id: m.final_reps for m in ChallengeMember.query.filter_by(challenge_id=challenge.id)}
        assert finals == {s.alice.user_id: None, s.bob.user_id: 10, s.carol.user_id: 25}

    def test_archive_only_once(self, setup):
        challenge_service.archive_challenge(setup.admin, setup.challenge.id)
        with pytest.raises(StateConflict):
            challenge_service.archive_challenge(setup.admin, setup.challenge.id)

    def test_archive_is_admin_only(self, setup):
        with pytest.raises(NotAuthorized):
            challenge_service.archive_challenge(setup.alice, setup.challenge.id)

    def test_list_marks_membership(self, setup):
        s = setup
        _join_all(s, s.alice)

        listed = challenge_service.list_challenges(s.alice, realm_id=s.realm.id, now=DURING)

        assert len(listed) == 1
        assert listed[0]["is_member"] is True
        assert listed[0]["member_count"] == 1
        assert listed[0]["has_ended"] is False
        assert listed[0]["commitment"]["name"] == "Push-ups"


class TestRealmMembership:
    @pytest.fixture
    def outsider(self, factory, actor_for):
        stranger = factory.user(name="Stranger")
        factory.realm(members=[stranger])
        return actor_for(stranger)

    def test_outsider_cannot_join(self, setup, outsider):
        with pytest.raises(NotAuthorized, match="not a member of this realm"):
            challenge_service.join_challenge(outsider, setup.challenge.id, now=DURING)
        assert ChallengeMember.query.count() == 0

    def test_outsider_cannot_vote(self, setup, outsider):
        _join_all(setup, setup.alice)
        with pytest.raises(NotAuthorized):
            challenge_service.submit_vote(
                outsider, setup.challenge.id, setup.alice.user_id, 5, now=DURING
            )

    def test_outsider_cannot_read_leaderboard(self, setup, outsider):
        with pytest.raises(NotAuthorized):
            challenge_service.get_challenge_leaderboard(outsider, setup.challenge.id)

    def test_outsider_cannot_list_by_realm(self, setup, outsider):
        with pytest.raises(NotAuthorized):
            challenge_service.list_challenges(outsider, realm_id=setup.realm.id, now=DURING)

    def test_unfiltered_list_only_shows_own_realms(self, setup, outsider):
        assert challenge_service.list_challenges(outsider, now=DURING) == []
        assert len(challenge_service.list_challenges(setup.alice, now=DURING)) == 1

    def test_admin_sees_every_realm(self, setup):
        assert len(challenge_service.list_challenges(setup.admin, now=DURING)) == 1
