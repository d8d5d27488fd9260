from datetime import date

import pytest
from pydantic import ValidationError

from whoami_chat.domain.matchmaking import (
    DirectoryUser,
    GenderPreference,
    MatchmakingFilters,
    age_from_dob,
    build_pool,
    matches,
    resolve_age,
)

TODAY = date(2024, 6, 15)


def test_age_accounts_for_birthday_not_yet_reached():
    assert age_from_dob("2000-06-15", TODAY) == 24
    assert age_from_dob("2000-06-16", TODAY) == 23
    assert age_from_dob("2000-12-31T00:00:00.000Z", TODAY) == 23
    assert age_from_dob("not a date", TODAY) is None
    assert age_from_dob(None, TODAY) is None


def test_age_boundary_for_exact_range():
    filters = MatchmakingFilters(age_min=18, age_max=18)
    turns_eighteen_today = DirectoryUser(id="a", date_of_birth="2006-06-15")
    turns_eighteen_tomorrow = DirectoryUser(id="b", date_of_birth="2006-06-16")

    assert matches(turns_eighteen_today, filters, TODAY)
    assert not matches(turns_eighteen_tomorrow, filters, TODAY)


def test_explicit_age_wins_over_birthdate():
    user = DirectoryUser(id="a", age=30, date_of_birth="2006-06-15")
    assert resolve_age(user, TODAY) == 30


def test_users_without_age_pass_the_age_filter():
    filters = MatchmakingFilters(age_min=40, age_max=50)
    assert matches(DirectoryUser(id="a"), filters, TODAY)
    assert matches(DirectoryUser(id="b", date_of_birth="garbage"), filters, TODAY)


def test_gender_preference_maps_to_profile_gender():
    assert GenderPreference.GIRLS.profile_gender == "female"
    assert GenderPreference.BOYS.profile_gender == "male"
    assert GenderPreference.ANYONE.profile_gender is None

    boys = MatchmakingFilters(gender="boys")
    assert matches(DirectoryUser(id="a", gender="male"), boys, TODAY)
    assert not matches(DirectoryUser(id="b", gender="female"), boys, TODAY)
    assert not matches(DirectoryUser(id="c"), boys, TODAY)
    assert matches(DirectoryUser(id="d"), MatchmakingFilters(), TODAY)


def test_interest_overlap_is_case_insensitive():
    filters = MatchmakingFilters(interests=["Music", "music", " Art "])
    assert filters.interests == ("music", "art")
    assert matches(DirectoryUser(id="a", interests=("MUSIC",)), filters, TODAY)
    assert not matches(DirectoryUser(id="b", interests=("sports",)), filters, TODAY)
    assert not matches(DirectoryUser(id="c"), filters, TODAY)


def test_filter_bounds_are_clamped_and_validated():
    filters = MatchmakingFilters(age_min=5, age_max=150)
    assert (filters.age_min, filters.age_max) == (13, 99)
    with pytest.raises(ValidationError):
        MatchmakingFilters(age_min=30, age_max=20)


def test_pool_for_girls_twenties_who_like_music():
    interest_sets = [("Music",), ("MUSIC", "art"), ("sports",), ()]
    users = [
        DirectoryUser(
            id=f"user-{index}",
            gender=["female", "male", None][index % 3],
            age=15 + index % 25,
            interests=interest_sets[index % 4],
        )
        for index in range(100)
    ]
    filters = MatchmakingFilters(gender="girls", age_min=20, age_max=30, interests=["music"])

    pool = build_pool(users, filters, TODAY, exclude_ids=["user-1"])

    assert pool
    for user in pool:
        assert user.gender == "female"
        assert 20 <= resolve_age(user, TODAY) <= 30
        assert "music" in {tag.lower() for tag in user.interests}
        assert user.id != "user-1"
    expected = [
        u.id
        for u in users
        if u.gender == "female" and 20 <= u.age <= 30 and "music" in {t.lower() for t in u.interests}
    ]
    assert [u.id for u in pool] == expected
