"""Realm, holiday, commitment and assignment management, plus leaderboard sharing."""

from datetime import date, datetime

import pytest

from dailydues import db
from dailydues.models import Commitment, DailyLog, UserCommitment
from dailydues.services import logs as log_service
from dailydues.services import commitments as commitment_service
from dailydues.services import leaderboard as leaderboard_service
from dailydues.services import realms as realm_service
from dailydues.services.errors import NotAuthorized, NotFound, StateConflict, ValidationError


@pytest.fixture
def admin(factory, actor_for):
    return actor_for(factory.admin())


class TestRealms:
    def test_slug_must_be_unique(self, admin):
        realm_service.create_realm(admin, "Gym", "gym")
        with pytest.raises(StateConflict):
            realm_service.create_realm(admin, "Gym 2", "gym")

    def test_slug_format(self, admin):
        with pytest.raises(ValidationError):
            realm_service.create_realm(admin, "Gym", "Gym Rats!")

    def test_users_only_see_their_realms(self, admin, factory, actor_for):
        user = factory.user()
        mine = factory.realm(members=[user])
        factory.realm()

        assert [r.id for r in realm_service.list_realms(actor_for(user))] == [mine.id]
        assert len(realm_service.list_realms(admin)) == 2


class TestHolidays:
    def test_personal_holiday_requires_membership(self, admin, factory):
        realm = factory.realm()
        outsider = factory.user()
        with pytest.raises(ValidationError, match="not in this realm"):
            realm_service.create_holiday(admin, realm.id, "2025-05-01", "Leave", user_id=outsider.id)

    def test_realm_and_personal_holiday_on_same_day(self, admin, factory):
        user = factory.user()
        realm = factory.realm(members=[user])

        realm_service.create_holiday(admin, realm.id, "2025-05-01", "Labour Day")
        realm_service.create_holiday(admin, realm.id, "2025-05-01", "Also off", user_id=user.id)

        with pytest.raises(StateConflict):
            realm_service.create_holiday(admin, realm.id, "2025-05-01", "Again")

        assert len(realm_service.list_holidays(admin, realm.id)) == 2

    def test_unknown_realm(self, admin):
        with pytest.raises(NotFound):
            realm_service.create_holiday(admin, 404, "2025-05-01", "x")

    def test_bad_date(self, admin, factory):
        realm = factory.realm()
        with pytest.raises(ValidationError):
            realm_service.create_holiday(admin, realm.id, "May 1st", "x")

    def test_users_cannot_add_holidays(self, factory, actor_for):
        realm = factory.realm()
        with pytest.raises(NotAuthorized):
            realm_service.create_holiday(actor_for(factory.user()), realm.id, "2025-05-01", "x")


class TestCommitments:
    def test_defaults(self, admin, factory):
        realm = factory.realm()
        commitment = commitment_service.create_commitment(
            admin, realm.id, "Push-ups", 50, active_days=[0, 1, 2, 3, 4]
        )
        assert commitment.unit == "reps"
        assert float(commitment.punishment_multiplier) == 1.0
        assert commitment.is_active is True

    def test_work_week_by_default(self, admin, factory):
        commitment = commitment_service.create_commitment(admin, factory.realm().id, "Plank", 60)
        assert commitment.active_days == [0, 1, 2, 3, 4]
        assert commitment.to_dict()["active_day_names"] == [
            "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday",
        ]

    def test_model_default_is_work_week(self, factory):
        realm = factory.realm()
        owner = factory.admin()
        commitment = Commitment(realm_id=realm.id, name="Sit-ups", daily_target=5, created_by=owner.id)
        db.session.add(commitment)
        db.session.commit()
        assert commitment.active_days == [0, 1, 2, 3, 4]

    def test_unknown_realm(self, admin):
        with pytest.raises(NotFound):
            commitment_service.create_commitment(admin, 404, "Push-ups", 50, active_days=[1])

    def test_update_rejects_empty_days(self, admin, factory):
        commitment = factory.commitment(factory.realm())
        with pytest.raises(ValidationError):
            commitment_service.update_commitment(admin, commitment.id, active_days=[])

    def test_delete_removes_logs_and_assignments(self, admin, factory, actor_for):
        user = factory.user()
        commitment = factory.commitment(factory.realm(members=[user]))
        factory.assign(user, commitment)
        db.session.add(
            DailyLog(
                user_id=user.id,
                commitment_id=commitment.id,
                date=date(2025, 1, 13),
                target_amount=10,
                completed_amount=5,
            )
        )
        db.session.commit()

        commitment_service.delete_commitment(admin, commitment.id)

        assert db.session.get(Commitment, commitment.id) is None
        assert UserCommitment.query.count() == 0
        assert DailyLog.query.count() == 0


class TestAssignments:
    def test_sync_adds_and_removes(self, admin, factory):
        user = factory.user()
        realm = factory.realm(members=[user])
        keep = factory.commitment(realm, name="Keep")
        drop = factory.commitment(realm, name="Drop")
        new = factory.commitment(realm, name="New")
        factory.assign(user, keep, current_streak=4, best_streak=4)
        factory.assign(user, drop)

        result = commitment_service.assign_user_commitments(admin, user.id, [keep.id, new.id])

        by_commitment = {a.commitment_id: a for a in result}
        assert set(by_commitment) == {keep.id, new.id}
        assert by_commitment[keep.id].current_streak == 4
        assert by_commitment[new.id].current_streak == 0

    def test_unknown_commitment(self, admin, factory):
        user = factory.user()
        with pytest.raises(NotFound):
            commitment_service.assign_user_commitments(admin, user.id, [12345])

    def test_users_cannot_read_others(self, factory, actor_for):
        a, b = factory.user(), factory.user()
        with pytest.raises(NotAuthorized):
            commitment_service.list_user_commitments(actor_for(a), user_id=b.id)


class TestShareLeaderboard:
    def test_share_sends_ranked_entries(self, admin, factory, notifier):
        users = [factory.user(name=n) for n in ("A", "B")]
        commitment = factory.commitment(factory.realm(members=users))
        factory.assign(users[0], commitment, current_streak=1, best_streak=1)
        factory.assign(users[1], commitment, current_streak=5, best_streak=5)

        assert leaderboard_service.share_leaderboard(admin, commitment.id, notifier=notifier) is True

        name, args = notifier.calls[0]
        assert name == "send_leaderboard"
        entries = args[2]
        assert [e["user_name"] for e in entries] == ["B", "A"]
        assert [e["rank"] for e in entries] == [1, 2]

    def test_nothing_to_share(self, admin, factory, notifier):
        commitment = factory.commitment(factory.realm())
        with pytest.raises(ValidationError):
            leaderboard_service.share_leaderboard(admin, commitment.id, notifier=notifier)

    def test_missing_commitment(self, admin, notifier):
        with pytest.raises(NotFound):
            leaderboard_service.share_leaderboard(admin, 999, notifier=notifier)


MONDAY = date(2025, 1, 13)


def _log_row(user, commitment, day=MONDAY, status="approved"):
    db.session.add(
        DailyLog(
            user_id=user.id,
            commitment_id=commitment.id,
            date=day,
            target_amount=10,
            completed_amount=10,
            status=status,
        )
    )
    db.session.commit()


class TestLeaderboardService:
    def test_equal_streaks_ranked_by_earliest_approval(self, admin, factory, actor_for):
        early, late = factory.user(name="Early"), factory.user(name="Late")
        commitment = factory.commitment(factory.realm(members=[early, late]))
        factory.assign(early, commitment)
        factory.assign(late, commitment)

        late_log = log_service.create_log(actor_for(late), commitment.id, MONDAY, 10)
        early_log = log_service.create_log(actor_for(early), commitment.id, MONDAY, 10)
        # reviewed in the opposite order of their approval times
        log_service.review_log(admin, late_log.id, True, now=datetime(2025, 1, 13, 18, 0))
        log_service.review_log(admin, early_log.id, True, now=datetime(2025, 1, 13, 8, 0))

        entries = leaderboard_service.get_leaderboard(admin, commitment_id=commitment.id, today=MONDAY)

        assert [e["user_name"] for e in entries] == ["Early", "Late"]
        assert [e["current_streak"] for e in entries] == [1, 1]
        assert entries[0]["completed_at"] == datetime(2025, 1, 13, 8, 0).isoformat()
        assert [e["today_status"] for e in entries] == ["approved", "approved"]

    def test_outsider_cannot_read_other_realm(self, factory, actor_for):
        member = factory.user()
        realm = factory.realm(members=[member])
        commitment = factory.commitment(realm)
        factory.assign(member, commitment)
        outsider = actor_for(factory.user())

        with pytest.raises(NotAuthorized):
            leaderboard_service.get_leaderboard(outsider, realm_id=realm.id)
        with pytest.raises(NotAuthorized):
            leaderboard_service.get_leaderboard(outsider, commitment_id=commitment.id)
        assert leaderboard_service.get_leaderboard(outsider) == []

    def test_unfiltered_board_limited_to_own_realms(self, admin, factory, actor_for):
        mine, theirs = factory.user(name="Mine"), factory.user(name="Theirs")
        here = factory.commitment(factory.realm(members=[mine]), name="Here")
        there = factory.commitment(factory.realm(members=[theirs]), name="There")
        factory.assign(mine, here)
        factory.assign(theirs, there)

        entries = leaderboard_service.get_leaderboard(actor_for(mine))

        assert [e["commitment_name"] for e in entries] == ["Here"]
        assert len(leaderboard_service.get_leaderboard(admin)) == 2

    def test_unknown_commitment(self, admin):
        with pytest.raises(NotFound):
            leaderboard_service.get_leaderboard(admin, commitment_id=999)


class TestRealmStats:
    def test_share_of_members_approved_today(self, admin, factory):
        done, waiting, yesterday = (factory.user(name=n) for n in ("Done", "Waiting", "Yesterday"))
        staff = factory.admin(name="Staff")
        realm = factory.realm(members=[done, waiting, yesterday, staff])
        push_ups = factory.commitment(realm)
        squats = factory.commitment(realm, name="Squats")

        _log_row(done, push_ups)
        _log_row(done, squats)
        _log_row(waiting, push_ups, status="pending")
        _log_row(yesterday, push_ups, day=date(2025, 1, 12))
        _log_row(staff, push_ups)

        [stats] = leaderboard_service.get_realm_stats(admin, realm_id=realm.id, today=MONDAY)

        assert stats["realm"]["id"] == realm.id
        assert stats["date"] == "2025-01-13"
        assert stats["total_users"] == 3
        assert stats["completed_users"] == 1
        assert stats["percentage"] == 33

    def test_empty_realm_is_zero_percent(self, admin, factory):
        realm = factory.realm()
        [stats] = leaderboard_service.get_realm_stats(admin, realm_id=realm.id, today=MONDAY)
        assert (stats["total_users"], stats["completed_users"], stats["percentage"]) == (0, 0, 0)

    def test_users_see_only_their_realms(self, admin, factory, actor_for):
        user = factory.user()
        mine = factory.realm(members=[user])
        other = factory.realm()

        stats = leaderboard_service.get_realm_stats(actor_for(user), today=MONDAY)

        assert [s["realm"]["id"] for s in stats] == [mine.id]
        with pytest.raises(NotAuthorized):
            leaderboard_service.get_realm_stats(actor_for(user), realm_id=other.id)
        assert len(leaderboard_service.get_realm_stats(admin, today=MONDAY)) == 2

    def test_unknown_realm(self, admin):
        with pytest.raises(NotFound):
            leaderboard_service.get_realm_stats(admin, realm_id=404)
